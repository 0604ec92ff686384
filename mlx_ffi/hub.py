"""
HuggingFace Hub integration for mlx_ffi.

MLX models are plain directories (config, tokenizer, safetensors weights).
This module downloads such a directory into the local HuggingFace cache and
loads it with :class:`~mlx_ffi.MlxLlm`.

Example:
    >>> import mlx_ffi

    # One-liner to load a model
    >>> llm = mlx_ffi.from_pretrained("mlx-community/Qwen2.5-0.5B-Instruct-4bit")

    # Local directories are loaded as-is
    >>> llm = mlx_ffi.from_pretrained("./Qwen2.5-0.5B-Instruct-4bit")
"""

import logging
import os
from typing import TYPE_CHECKING, Any, Optional, Sequence

try:
    from huggingface_hub import snapshot_download

    HUGGINGFACE_HUB_AVAILABLE = True
except ImportError:
    HUGGINGFACE_HUB_AVAILABLE = False

if TYPE_CHECKING:
    from .llm.engine import MlxLlm

logger = logging.getLogger(__name__)

# Files an MLX model directory needs; everything else in a repo is skipped.
MODEL_FILE_PATTERNS = [
    "*.json",
    "*.safetensors",
    "*.model",
    "*.tiktoken",
    "*.txt",
]


def download_model(
    repo_id: str,
    revision: Optional[str] = None,
    cache_dir: Optional[str] = None,
    token: Optional[str] = None,
    allow_patterns: Optional[Sequence[str]] = None,
) -> str:
    """
    Download an MLX model directory from the HuggingFace Hub.

    Args:
        repo_id: HuggingFace repository ID
        revision: Git revision (branch, tag, or commit)
        cache_dir: Directory to cache downloaded files
        token: HuggingFace API token for private repos
        allow_patterns: Glob patterns of files to fetch

    Returns:
        Local path of the downloaded directory

    Raises:
        ImportError: If huggingface_hub is not installed
    """
    if not HUGGINGFACE_HUB_AVAILABLE:
        raise ImportError(
            "huggingface_hub is not installed. "
            "Please install it with: pip install huggingface-hub"
        )

    logger.info("Downloading %s from the HuggingFace Hub", repo_id)
    return snapshot_download(
        repo_id=repo_id,
        revision=revision,
        cache_dir=cache_dir,
        token=token,
        allow_patterns=list(allow_patterns or MODEL_FILE_PATTERNS),
    )


def from_pretrained(
    repo_id_or_path: str,
    library_path: Optional[str] = None,
    use_gpu_default_stream: bool = False,
    revision: Optional[str] = None,
    cache_dir: Optional[str] = None,
    token: Optional[str] = None,
    **kwargs: Any,
) -> "MlxLlm":
    """
    Load a model from a local directory or the HuggingFace Hub.

    Args:
        repo_id_or_path: Local model directory or HuggingFace repository ID
        library_path: Explicit path to the MLX C library
        use_gpu_default_stream: Run on the default GPU stream
        revision: Git revision to download
        cache_dir: Directory to cache downloaded files
        token: HuggingFace API token for private repos
        **kwargs: Passed to :meth:`MlxLlm.open` (e.g. ``default_options``)
    """
    from .llm.engine import MlxLlm

    if os.path.isdir(repo_id_or_path):
        model_directory = repo_id_or_path
    else:
        model_directory = download_model(
            repo_id_or_path, revision=revision, cache_dir=cache_dir, token=token
        )

    return MlxLlm.open(
        model_directory,
        library_path=library_path,
        use_gpu_default_stream=use_gpu_default_stream,
        **kwargs,
    )
