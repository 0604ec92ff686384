"""
mlx_ffi - Python bindings for the MLX C library and its LLM runtime

mlx_ffi wraps the handle-based MLX C API with owned Python objects: every
native value is released exactly once, failed native calls raise
:class:`NativeCallError` with the operation name and status code, and text
generation is exposed as a plain iterator.

Quick Start:
    >>> import mlx_ffi

    # Arrays
    >>> mlx = mlx_ffi.Mlx.open()
    >>> a = mlx.from_float64([1.0, 2.0, 3.0, 4.0], shape=[2, 2])
    >>> a.sum().as_float64()
    10.0

    # Language models
    >>> llm = mlx_ffi.MlxLlm.open("./Qwen2.5-0.5B-Instruct-4bit")
    >>> llm.tokenize("cake")
    >>> for piece in llm.generate("How do I make cake?"):
    ...     print(piece, end="", flush=True)
"""

from .array import MlxArray
from .bindings import CATALOGUE, Dtype, NativeBindings, find_library
from .exceptions import (
    GenerationConflictError,
    InvalidArgumentError,
    InvalidStateError,
    LibraryNotFoundError,
    MlxError,
    NativeCallError,
)
from .hub import download_model, from_pretrained
from .llm import (
    GenerationStep,
    LlmGeneration,
    LlmModel,
    MlxLlm,
    ModelConfig,
    SamplingOptions,
    StopHandling,
)
from .memory import NativeAllocator
from .resource import NativeResource
from .runtime import Mlx
from .values import IntVector, NativeString

# Version info
__version__ = "0.1.0"

__all__ = [
    # Runtimes
    "Mlx",
    "MlxLlm",
    # Handles
    "NativeResource",
    "MlxArray",
    "NativeString",
    "IntVector",
    "LlmModel",
    "LlmGeneration",
    "GenerationStep",
    # Config classes
    "SamplingOptions",
    "StopHandling",
    "ModelConfig",
    # Native layer
    "NativeBindings",
    "NativeAllocator",
    "CATALOGUE",
    "Dtype",
    "find_library",
    # Errors
    "MlxError",
    "NativeCallError",
    "InvalidStateError",
    "InvalidArgumentError",
    "GenerationConflictError",
    "LibraryNotFoundError",
    # HuggingFace Hub functions
    "from_pretrained",
    "download_model",
    # Version
    "__version__",
]


def get_version() -> str:
    """Return the package version."""
    return __version__
