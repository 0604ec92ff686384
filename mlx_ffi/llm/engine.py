"""
MlxLlm - high-level LLM interface on top of the native bindings.

This module exposes tokenization, decoding and streaming generation. A
generation is presented as a lazy iterator of text fragments; the native
generation is driven one poll per fragment and is always torn down in the
same order, however the stream ends:

1. cancel (errors are logged and suppressed)
2. free (errors are raised only if nothing else failed first)
3. release the model's active-generation slot
"""

import asyncio
import ctypes
import logging
import os
from collections.abc import AsyncIterator, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Optional, Sequence

from ..bindings import MlxStream, NativeBindings
from ..exceptions import GenerationConflictError, InvalidArgumentError, InvalidStateError
from ..memory import NativeAllocator
from ..runtime import default_stream
from ..values import IntVector, read_string
from .config import ModelConfig, SamplingOptions
from .generation import LlmGeneration
from .model import LlmModel

logger = logging.getLogger(__name__)

# ==============================================================================
# Async polling
# ==============================================================================
#
# stream_async() hands each blocking native poll to a worker thread so the
# event loop stays free. Polls for one stream are awaited one at a time, so
# the native layer never runs ahead of the consumer, and teardown only starts
# once no call on the generation is still running in a worker.
# ==============================================================================

_POLL_EXECUTOR: Optional[ThreadPoolExecutor] = None


def _get_poll_executor() -> ThreadPoolExecutor:
    """Get or create the executor used by :meth:`MlxLlm.stream_async`."""
    global _POLL_EXECUTOR
    if _POLL_EXECUTOR is None:
        max_workers = min(32, (os.cpu_count() or 4) * 4)
        _POLL_EXECUTOR = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="mlx-llm-poll",
        )
    return _POLL_EXECUTOR


def shutdown_executor() -> None:
    """
    Shut down the async polling executor.

    Call this during application shutdown to ensure clean termination.
    """
    global _POLL_EXECUTOR
    if _POLL_EXECUTOR is not None:
        _POLL_EXECUTOR.shutdown(wait=True)
        _POLL_EXECUTOR = None


async def _await_worker(future: Future) -> Any:
    """
    Await a call submitted to the poll executor.

    If the awaiting task is cancelled, a call that has not started yet is
    dropped and one that is already running is waited for (blocking the
    loop) before the cancellation propagates.
    """
    try:
        return await asyncio.wrap_future(future)
    except asyncio.CancelledError:
        future.cancel()
        wait([future])
        raise


class MlxLlm:
    """
    Language model loaded through the MLX C library.

    Args:
        bindings: Native bindings (or a compatible test double)
        model: The loaded model handle
        stream: Stream the model was loaded on
        default_options: Sampling options used when a call passes none

    Examples:
        Basic usage:

        >>> from mlx_ffi import MlxLlm, SamplingOptions
        >>> llm = MlxLlm.open("./Qwen2.5-0.5B-Instruct-4bit")
        >>> print(llm.generate_text("How do I make cake?"))

        With context manager:

        >>> with MlxLlm.open("./model") as llm:
        ...     tokens = llm.tokenize("cake", add_bos=True, add_eos=True)

        Streaming, stopping early:

        >>> from contextlib import closing
        >>> with closing(llm.generate("Tell me a story")) as stream:
        ...     for piece in stream:
        ...         print(piece, end="", flush=True)
        ...         if "end" in piece:
        ...             break
    """

    def __init__(
        self,
        bindings: Any,
        model: LlmModel,
        stream: MlxStream,
        default_options: Optional[SamplingOptions] = None,
    ):
        self.bindings = bindings
        self.default_stream = stream
        self.default_options = default_options or SamplingOptions()
        self._model = model
        self._disposed = False

    @classmethod
    def from_bindings(
        cls,
        bindings: Any,
        model_directory: str,
        use_gpu_default_stream: bool = False,
        default_options: Optional[SamplingOptions] = None,
    ) -> "MlxLlm":
        """Load a model using already-opened bindings."""
        stream = default_stream(bindings, use_gpu_default_stream)
        model = LlmModel.load(bindings, model_directory, stream)
        return cls(bindings, model, stream, default_options)

    @classmethod
    def open(
        cls,
        model_directory: str,
        library_path: Optional[str] = None,
        use_gpu_default_stream: bool = False,
        default_options: Optional[SamplingOptions] = None,
    ) -> "MlxLlm":
        """
        Load the native library and a model from ``model_directory``.

        Raises:
            InvalidArgumentError: If ``model_directory`` is empty
            LibraryNotFoundError: If the MLX library cannot be located
            NativeCallError: If the native loader rejects the model
        """
        if not model_directory:
            raise InvalidArgumentError("model_directory", model_directory, "Must not be empty.")
        bindings = NativeBindings.open(library_path)
        return cls.from_bindings(bindings, model_directory, use_gpu_default_stream, default_options)

    @classmethod
    def from_config(cls, config: ModelConfig) -> "MlxLlm":
        """Load a model described by a :class:`ModelConfig`."""
        return cls.open(
            config.model_directory,
            library_path=config.library_path,
            use_gpu_default_stream=config.use_gpu_default_stream,
            default_options=config.default_options,
        )

    @classmethod
    def from_pretrained(cls, repo_id_or_path: str, **kwargs: Any) -> "MlxLlm":
        """Load a model from the HuggingFace Hub (see :func:`mlx_ffi.hub.from_pretrained`)."""
        from ..hub import from_pretrained

        return from_pretrained(repo_id_or_path, **kwargs)

    # =========================================================================
    # Tokenizer
    # =========================================================================

    def tokenize(self, text: str, add_bos: bool = True, add_eos: bool = False) -> list[int]:
        """
        Convert text to token ids with the model's tokenizer.

        Example:
            >>> llm.tokenize("cake", add_bos=True, add_eos=True)
            [1, 99, 97, 107, 101, 2]
        """
        model = self._live_model()
        data = text.encode("utf-8")
        vector = IntVector.acquire(
            self.bindings,
            "tokenize",
            lambda out: self.bindings.tokenize(out, model.raw, data, add_bos, add_eos),
        )
        try:
            return vector.to_list()
        finally:
            vector.dispose()

    def decode(self, tokens: Sequence[int]) -> str:
        """Convert token ids back to text."""
        model = self._live_model()
        ids = [int(t) for t in tokens]
        token_array = (ctypes.c_int * len(ids))(*ids) if ids else None
        return read_string(
            self.bindings,
            "decode",
            lambda out: self.bindings.decode(out, model.raw, token_array, len(ids)),
        )

    decode_tokens = decode

    # =========================================================================
    # Generation
    # =========================================================================

    @property
    def model(self) -> LlmModel:
        return self._model

    @property
    def generation_active(self) -> bool:
        return self._model.generation_active

    def generate(
        self,
        prompt: str,
        options: Optional[SamplingOptions] = None,
        allocator: Optional[NativeAllocator] = None,
    ) -> Iterator[str]:
        """
        Stream generated text fragments.

        The native generation starts when the first fragment is requested.
        Stopping early (``break`` followed by ``close()``, or dropping the
        iterator) cancels and frees it, leaving the model ready for the next
        call.

        Args:
            prompt: Input text prompt (must not be empty)
            options: Sampling options, defaults to :attr:`default_options`
            allocator: Allocator for the marshalled options

        Raises:
            GenerationConflictError: If a generation is already running on
                this model
            InvalidArgumentError: If the prompt is empty or an option is invalid

        Example:
            >>> for piece in llm.generate("Tell me a story"):
            ...     print(piece, end="", flush=True)
        """
        options = self._prepare(prompt, options)
        return self._stream(prompt, options, allocator)

    def generate_text(self, prompt: str, options: Optional[SamplingOptions] = None) -> str:
        """Generate and return the whole response as one string."""
        return "".join(self.generate(prompt, options))

    async def stream_async(
        self,
        prompt: str,
        options: Optional[SamplingOptions] = None,
    ) -> AsyncIterator[str]:
        """
        Asynchronously stream generated text fragments.

        Cancelling the consuming task tears the generation down like any
        other early stop. A native call already running on a worker thread
        is allowed to return first, so teardown never overlaps it.

        Example:
            >>> async for piece in llm.stream_async("Hello"):
            ...     print(piece, end="", flush=True)
        """
        options = self._prepare(prompt, options)
        executor = _get_poll_executor()

        start = executor.submit(self._start, prompt, options, None)
        try:
            generation = await _await_worker(start)
        except asyncio.CancelledError:
            if not start.cancelled() and start.exception() is None:
                self._finish(start.result(), failed=True)
            raise

        failed = False
        try:
            while True:
                step = await _await_worker(executor.submit(generation.next))
                if step.text:
                    yield step.text
                if step.done:
                    break
        except (Exception, asyncio.CancelledError):
            failed = True
            raise
        finally:
            self._finish(generation, failed)

    def _prepare(self, prompt: str, options: Optional[SamplingOptions]) -> SamplingOptions:
        model = self._live_model()
        if model.generation_active:
            raise GenerationConflictError("A generation is already active for this model.")
        if not prompt:
            raise InvalidArgumentError("prompt", prompt, "Must not be empty.")
        options = options or self.default_options
        options.validate()
        return options

    def _start(
        self,
        prompt: str,
        options: SamplingOptions,
        allocator: Optional[NativeAllocator],
    ) -> LlmGeneration:
        return LlmGeneration.start(self.bindings, self._live_model(), prompt, options, allocator)

    def _stream(
        self,
        prompt: str,
        options: SamplingOptions,
        allocator: Optional[NativeAllocator],
    ) -> Iterator[str]:
        generation = self._start(prompt, options, allocator)
        failed = False
        try:
            while True:
                step = generation.next()
                if step.text:
                    yield step.text
                if step.done:
                    break
        except Exception:
            failed = True
            raise
        finally:
            self._finish(generation, failed)

    def _finish(self, generation: LlmGeneration, failed: bool) -> None:
        try:
            try:
                generation.cancel()
            except Exception as e:
                logger.warning("Ignoring error while cancelling generation: %s", e)
            try:
                generation.dispose()
            except Exception as e:
                if not failed:
                    raise
                logger.warning("Ignoring error while freeing a failed generation: %s", e)
        finally:
            self._model._release_generation(generation)
            logger.debug("Generation finished (failed=%s)", failed)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def dispose(self) -> None:
        """
        Release the model, cancelling and freeing a running generation first.

        Safe to call more than once. Every step is attempted; the first error
        is raised at the end.
        """
        if self._disposed:
            return
        self._disposed = True
        first_error: Optional[BaseException] = None

        generation = self._model.active_generation
        if generation is not None:
            for step in (generation.cancel, generation.dispose):
                try:
                    step()
                except Exception as e:
                    first_error = first_error or e
            self._model._release_generation(generation)

        try:
            self._model.dispose()
        except Exception as e:
            first_error = first_error or e

        if first_error is not None:
            raise first_error

    close = dispose

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _live_model(self) -> LlmModel:
        if self._disposed:
            raise InvalidStateError("MlxLlm has been disposed.")
        return self._model

    def __enter__(self) -> "MlxLlm":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        status = "disposed" if self._disposed else "active"
        return f"MlxLlm(model={self._model.model_directory!r}, status={status})"


