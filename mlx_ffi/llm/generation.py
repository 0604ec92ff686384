"""
In-flight generation handle and the sampling-option marshaler.

A generation moves through Started -> Polling -> Done or Cancelled -> Freed.
Each :meth:`LlmGeneration.next` call produces one text fragment; the native
string carrying it is converted and freed within that same call.
"""

import ctypes
import logging
from typing import Any, NamedTuple, Optional

from ..bindings import MlxLlmGenerationHandle, MlxLlmSamplingOptions, MlxString
from ..exceptions import (
    GenerationConflictError,
    InvalidArgumentError,
    NativeCallError,
    raise_for_status,
)
from ..memory import NativeAllocator
from ..resource import NativeResource, free_partial
from ..values import take_string
from .config import SamplingOptions
from .model import LlmModel

logger = logging.getLogger(__name__)


class GenerationStep(NamedTuple):
    """Result of one poll: the produced fragment and whether generation is over."""

    text: str
    done: bool


class NativeSamplingOptions:
    """
    Native parameter block built from :class:`SamplingOptions`.

    Holds the block itself, one C string per stop sequence and the pointer
    array referencing them. :meth:`release` frees all of them exactly once;
    used as a context manager it runs however the native call turned out.

    Example:
        >>> with NativeSamplingOptions.allocate(options) as native:
        ...     bindings.generation_start(out, model, prompt, native.pointer)
    """

    def __init__(
        self,
        allocator: NativeAllocator,
        block: Optional[MlxLlmSamplingOptions],
        stop_array: Optional[ctypes.Array],
        stop_strings: list,
    ):
        self._allocator = allocator
        self._block = block
        self._stop_array = stop_array
        self._stop_strings = stop_strings
        self._released = False

    @classmethod
    def allocate(
        cls,
        options: SamplingOptions,
        allocator: Optional[NativeAllocator] = None,
    ) -> "NativeSamplingOptions":
        """
        Validate ``options`` and build the native parameter block.

        Raises:
            InvalidArgumentError: For the first out-of-range option
        """
        options.validate()
        native = cls(allocator or NativeAllocator(), None, None, [])
        try:
            native._fill(options)
        except BaseException:
            native.release()
            raise
        return native

    def _fill(self, options: SamplingOptions) -> None:
        # Every buffer is recorded on self as soon as it exists, so release()
        # can free a partially built block.
        allocator = self._allocator
        for stop in options.stop_sequences:
            self._stop_strings.append(allocator.string(stop))
        if self._stop_strings:
            self._stop_array = allocator.array(
                ctypes.c_char_p,
                [ctypes.cast(buf, ctypes.c_char_p) for buf in self._stop_strings],
            )

        block = self._block = allocator.struct(MlxLlmSamplingOptions)
        block.temperature = options.temperature
        block.top_p = options.top_p
        block.top_k = options.top_k
        block.max_tokens = options.max_tokens
        block.repetition_penalty = options.repetition_penalty
        block.has_seed = options.seed is not None
        block.seed = options.seed if options.seed is not None else 0
        block.stop_sequences = (
            ctypes.cast(self._stop_array, ctypes.POINTER(ctypes.c_char_p))
            if self._stop_array is not None
            else None
        )
        block.stop_sequence_count = len(self._stop_strings)
        block.stop_handling = options.stop_handling.native_value

    @property
    def pointer(self) -> Any:
        """Pointer to the parameter block, as passed to ``generation_start``."""
        return ctypes.pointer(self._block)

    def release(self) -> None:
        """Free the stop strings, the pointer array and the block."""
        if self._released:
            return
        self._released = True
        for buf in self._stop_strings:
            self._allocator.free(buf)
        self._stop_strings = []
        if self._stop_array is not None:
            self._allocator.free(self._stop_array)
            self._stop_array = None
        if self._block is not None:
            self._allocator.free(self._block)
            self._block = None

    def __enter__(self) -> "NativeSamplingOptions":
        return self

    def __exit__(self, exc_type: Optional[type], exc_val: Any, exc_tb: Any) -> None:
        self.release()


class LlmGeneration(NativeResource):
    """
    Owned ``mlx_llm_generation`` handle.

    Created by :meth:`start`, which also marks the model as busy. Cancelling or
    disposing the generation frees the model for the next one.
    """

    handle_type = MlxLlmGenerationHandle
    free_operation = "generation_free"

    def __init__(self, bindings: Any, raw: MlxLlmGenerationHandle, model: LlmModel):
        super().__init__(bindings, raw)
        self._model = model
        self._done = False
        self._cancelled = False

    @classmethod
    def start(
        cls,
        bindings: Any,
        model: LlmModel,
        prompt: str,
        options: Optional[SamplingOptions] = None,
        allocator: Optional[NativeAllocator] = None,
    ) -> "LlmGeneration":
        """
        Start generating from ``prompt`` on ``model``.

        Raises:
            GenerationConflictError: If the model already runs a generation
                (no native call is made)
            InvalidArgumentError: If the prompt is empty or an option is invalid
            NativeCallError: If the native start call fails
        """
        if model.generation_active:
            raise GenerationConflictError("A generation is already active for this model.")
        if not prompt:
            raise InvalidArgumentError("prompt", prompt, "Must not be empty.")

        prompt_bytes = prompt.encode("utf-8")
        with NativeSamplingOptions.allocate(options or SamplingOptions(), allocator) as native:
            generation = cls.acquire(
                bindings,
                "generation_start",
                lambda out: bindings.generation_start(
                    out, model.raw, prompt_bytes, native.pointer
                ),
                model=model,
            )

        model._attach_generation(generation)
        logger.debug("Started generation on %r", model)
        return generation

    @property
    def model(self) -> LlmModel:
        return self._model

    @property
    def done(self) -> bool:
        """Whether a poll has reported the end of generation."""
        return self._done

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def next(self) -> GenerationStep:
        """
        Poll the next fragment.

        Once ``done`` has been reported the native library keeps answering
        with an empty fragment and ``done=True``.
        """
        raw = self.raw
        text_out = MlxString()
        done_out = ctypes.c_bool()
        code = self._bindings.generation_next(
            ctypes.pointer(text_out), ctypes.pointer(done_out), raw
        )
        if code != 0:
            free_partial(self._bindings, "string_free", text_out)
            raise NativeCallError("generation_next", code)

        text = take_string(self._bindings, text_out)
        self._done = self._done or bool(done_out.value)
        return GenerationStep(text, bool(done_out.value))

    def cancel(self) -> None:
        """Ask the native layer to stop producing fragments. Safe to repeat."""
        raw = self.raw
        self._cancelled = True
        try:
            raise_for_status(self._bindings.generation_cancel(raw), "generation_cancel")
        finally:
            self._model._release_generation(self)

    def dispose(self) -> None:
        """Free the native generation context and release the model."""
        try:
            super().dispose()
        finally:
            self._model._release_generation(self)

    close = dispose

    def __repr__(self) -> str:
        if self._disposed:
            state = "freed"
        elif self._cancelled:
            state = "cancelled"
        elif self._done:
            state = "done"
        else:
            state = "running"
        return f"LlmGeneration(state={state})"
