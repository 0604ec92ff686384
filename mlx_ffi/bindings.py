"""
Low-level ctypes bindings for the MLX C library.

This module declares the opaque handle types, the native dtype enum and the
catalogue of wrapped calls (operation name -> symbol, return type, argument
types). Symbols are resolved lazily so a library that only exports part of
the catalogue can still be used for the calls it does provide.
"""

import ctypes
import logging
import os
import platform
from enum import IntEnum
from pathlib import Path
from typing import Any, NamedTuple, Optional

from .exceptions import LibraryNotFoundError

logger = logging.getLogger(__name__)

# Environment variable that points at an explicit library file
LIBRARY_ENV_VAR = "MLX_FFI_LIBRARY"


# ==============================================================================
# Opaque handle types
# ==============================================================================


class _Handle(ctypes.Structure):
    """Opaque native context. A null ``ctx`` means "no handle"."""

    _fields_ = [("ctx", ctypes.c_void_p)]

    def __bool__(self) -> bool:
        return bool(self.ctx)

    def __repr__(self) -> str:
        ctx = self.ctx
        return f"{self.__class__.__name__}(ctx={hex(ctx) if ctx else 'NULL'})"


class MlxString(_Handle):
    pass


class MlxArrayHandle(_Handle):
    pass


class MlxStream(_Handle):
    pass


class MlxVectorInt(_Handle):
    pass


class MlxLlmModelHandle(_Handle):
    pass


class MlxLlmGenerationHandle(_Handle):
    pass


class MlxLlmSamplingOptions(ctypes.Structure):
    """Parameter block passed to ``mlx_llm_generation_start``."""

    _fields_ = [
        ("temperature", ctypes.c_float),
        ("top_p", ctypes.c_float),
        ("top_k", ctypes.c_int),
        ("max_tokens", ctypes.c_int),
        ("repetition_penalty", ctypes.c_float),
        ("has_seed", ctypes.c_bool),
        ("seed", ctypes.c_uint),
        ("stop_sequences", ctypes.POINTER(ctypes.c_char_p)),
        ("stop_sequence_count", ctypes.c_size_t),
        ("stop_handling", ctypes.c_uint),
    ]


class Dtype(IntEnum):
    """Element types, numbered as in the native ``mlx_dtype`` enum."""

    BOOL = 0
    UINT8 = 1
    UINT16 = 2
    UINT32 = 3
    UINT64 = 4
    INT8 = 5
    INT16 = 6
    INT32 = 7
    INT64 = 8
    FLOAT16 = 9
    FLOAT32 = 10
    FLOAT64 = 11
    BFLOAT16 = 12
    COMPLEX64 = 13

    @property
    def itemsize(self) -> int:
        """Byte width of one element."""
        return _DTYPE_ITEMSIZE[self]


_DTYPE_ITEMSIZE = {
    Dtype.BOOL: 1,
    Dtype.UINT8: 1,
    Dtype.UINT16: 2,
    Dtype.UINT32: 4,
    Dtype.UINT64: 8,
    Dtype.INT8: 1,
    Dtype.INT16: 2,
    Dtype.INT32: 4,
    Dtype.INT64: 8,
    Dtype.FLOAT16: 2,
    Dtype.FLOAT32: 4,
    Dtype.FLOAT64: 8,
    Dtype.BFLOAT16: 2,
    Dtype.COMPLEX64: 8,
}


# ==============================================================================
# Call catalogue
# ==============================================================================


class Signature(NamedTuple):
    symbol: str
    restype: Any
    argtypes: list


_int = ctypes.c_int
_size = ctypes.c_size_t
_bool = ctypes.c_bool
_double = ctypes.c_double
_char_p = ctypes.c_char_p
_P = ctypes.POINTER


def _core(name: str, restype: Any, *argtypes: Any) -> tuple[str, Signature]:
    return name, Signature(f"mlx_{name}", restype, list(argtypes))


def _llm(name: str, restype: Any, *argtypes: Any) -> tuple[str, Signature]:
    return name, Signature(f"mlx_llm_{name}", restype, list(argtypes))


def _binary(name: str) -> tuple[str, Signature]:
    return _core(name, _int, _P(MlxArrayHandle), MlxArrayHandle, MlxArrayHandle, MlxStream)


CATALOGUE: dict[str, Signature] = dict(
    [
        # Strings and version
        _core("version", _int, _P(MlxString)),
        _core("string_data", _char_p, MlxString),
        _core("string_free", _int, MlxString),
        # Streams
        _core("default_cpu_stream_new", MlxStream),
        _core("default_gpu_stream_new", MlxStream),
        _core("synchronize", _int, MlxStream),
        # Array construction
        _core("array_new_bool", MlxArrayHandle, _bool),
        _core("array_new_int", MlxArrayHandle, _int),
        _core("array_new_float32", MlxArrayHandle, ctypes.c_float),
        _core("array_new_float64", MlxArrayHandle, _double),
        _core("array_new_data", MlxArrayHandle, ctypes.c_void_p, _P(_int), _int, _int),
        _core("array_free", _int, MlxArrayHandle),
        # Array metadata and data access
        _core("array_itemsize", _size, MlxArrayHandle),
        _core("array_size", _size, MlxArrayHandle),
        _core("array_nbytes", _size, MlxArrayHandle),
        _core("array_ndim", _size, MlxArrayHandle),
        _core("array_shape", _P(_int), MlxArrayHandle),
        _core("array_dtype", _int, MlxArrayHandle),
        _core("array_eval", _int, MlxArrayHandle),
        _core("array_item_bool", _int, _P(_bool), MlxArrayHandle),
        _core("array_item_int32", _int, _P(ctypes.c_int32), MlxArrayHandle),
        _core("array_item_float32", _int, _P(ctypes.c_float), MlxArrayHandle),
        _core("array_item_float64", _int, _P(_double), MlxArrayHandle),
        _core("array_data_float64", _P(_double), MlxArrayHandle),
        _core("array_tostring", _int, _P(MlxString), MlxArrayHandle),
        # Array operations
        _core("zeros", _int, _P(MlxArrayHandle), _P(_int), _size, _int, MlxStream),
        _core("ones", _int, _P(MlxArrayHandle), _P(_int), _size, _int, MlxStream),
        _core("arange", _int, _P(MlxArrayHandle), _double, _double, _double, _int, MlxStream),
        _core("linspace", _int, _P(MlxArrayHandle), _double, _double, _int, _int, MlxStream),
        _binary("add"),
        _binary("subtract"),
        _binary("multiply"),
        _binary("divide"),
        _binary("matmul"),
        _core("reshape", _int, _P(MlxArrayHandle), MlxArrayHandle, _P(_int), _size, MlxStream),
        _core("astype", _int, _P(MlxArrayHandle), MlxArrayHandle, _int, MlxStream),
        _core("sum", _int, _P(MlxArrayHandle), MlxArrayHandle, _bool, MlxStream),
        _core("mean", _int, _P(MlxArrayHandle), MlxArrayHandle, _bool, MlxStream),
        # Integer vectors
        _core("vector_int_free", _int, MlxVectorInt),
        _core("vector_int_size", _size, MlxVectorInt),
        _core("vector_int_get", _int, _P(_int), MlxVectorInt, _size),
        # LLM
        _llm("model_load", _int, _P(MlxLlmModelHandle), _char_p, MlxStream),
        _llm("model_free", _int, MlxLlmModelHandle),
        _llm("tokenize", _int, _P(MlxVectorInt), MlxLlmModelHandle, _char_p, _bool, _bool),
        _llm("decode", _int, _P(MlxString), MlxLlmModelHandle, _P(_int), _size),
        _llm(
            "generation_start",
            _int,
            _P(MlxLlmGenerationHandle),
            MlxLlmModelHandle,
            _char_p,
            _P(MlxLlmSamplingOptions),
        ),
        _llm("generation_next", _int, _P(MlxString), _P(_bool), MlxLlmGenerationHandle),
        _llm("generation_cancel", _int, MlxLlmGenerationHandle),
        _llm("generation_free", _int, MlxLlmGenerationHandle),
    ]
)


class NativeBindings:
    """
    Typed view of a loaded MLX library.

    Attribute access by catalogue name returns the configured ctypes function,
    e.g. ``bindings.generation_start(out, model, prompt, opts)``. Functions are
    looked up and typed on first use, then cached on the instance.

    Args:
        library: The loaded shared library
    """

    def __init__(self, library: ctypes.CDLL):
        self._lib = library

    @classmethod
    def open(cls, library_path: Optional[str] = None) -> "NativeBindings":
        """Locate and load the native library, see :func:`find_library`."""
        return cls(load_library(library_path))

    @property
    def library(self) -> ctypes.CDLL:
        return self._lib

    def has(self, name: str) -> bool:
        """Whether the library exports the symbol behind a catalogue name."""
        signature = CATALOGUE.get(name)
        return signature is not None and hasattr(self._lib, signature.symbol)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            signature = CATALOGUE[name]
        except KeyError:
            raise AttributeError(f"{name!r} is not a known native operation") from None

        func = getattr(self._lib, signature.symbol)
        func.restype = signature.restype
        func.argtypes = signature.argtypes
        setattr(self, name, func)
        return func

    def __repr__(self) -> str:
        return f"NativeBindings({getattr(self._lib, '_name', self._lib)!r})"


# ==============================================================================
# Library discovery
# ==============================================================================


def _library_names() -> list[str]:
    system = platform.system()
    if system == "Darwin":
        # libmlx.dylib is the older name of the C API library
        return ["libmlxc.dylib", "libmlx.dylib"]
    if system == "Windows":
        return ["mlx.dll"]
    return ["libmlx.so", "libmlxc.so"]


def _search_paths() -> list[Path]:
    package_dir = Path(__file__).parent
    paths = [
        package_dir,
        package_dir / "lib",
        package_dir.parent / "build",
        Path("/usr/local/lib"),
        Path("/opt/homebrew/lib"),
        Path("/usr/lib"),
    ]

    env_var = "DYLD_LIBRARY_PATH" if platform.system() == "Darwin" else "LD_LIBRARY_PATH"
    if env_var in os.environ:
        for path_str in os.environ[env_var].split(os.pathsep):
            if path_str:
                paths.append(Path(path_str))
    return paths


def find_library(library_path: Optional[str] = None) -> str:
    """
    Find the MLX C shared library.

    Searches in:
    1. ``library_path`` if given
    2. The ``MLX_FFI_LIBRARY`` environment variable
    3. The package directory and its ``lib`` folder
    4. System library directories
    5. LD_LIBRARY_PATH / DYLD_LIBRARY_PATH

    Returns:
        Path to the library file

    Raises:
        LibraryNotFoundError: If the library cannot be found
    """
    override = library_path or os.environ.get(LIBRARY_ENV_VAR)
    if override:
        if not Path(override).exists():
            raise LibraryNotFoundError(f"MLX library not found at {override}")
        return override

    search_paths = _search_paths()
    for search_path in search_paths:
        for lib_name in _library_names():
            candidate = search_path / lib_name
            if candidate.exists():
                return str(candidate)

    raise LibraryNotFoundError(
        f"Could not find the MLX library. Searched in: {[str(p) for p in search_paths]}"
    )


def load_library(library_path: Optional[str] = None) -> ctypes.CDLL:
    """Load the MLX shared library with ctypes."""
    path = find_library(library_path)
    logger.debug("Loading MLX library from %s", path)
    return ctypes.CDLL(path)
