"""Loaded-model handle and its active-generation slot."""

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..bindings import MlxLlmModelHandle, MlxStream
from ..exceptions import InvalidArgumentError
from ..resource import NativeResource

if TYPE_CHECKING:
    from .generation import LlmGeneration

logger = logging.getLogger(__name__)


class LlmModel(NativeResource):
    """
    Owned ``mlx_llm_model`` handle.

    Besides the native context the model records which generation, if any, is
    currently running against it. At most one may be active at a time.
    """

    handle_type = MlxLlmModelHandle
    free_operation = "model_free"

    def __init__(self, bindings: Any, raw: MlxLlmModelHandle, model_directory: str = ""):
        super().__init__(bindings, raw)
        self.model_directory = model_directory
        self._active_generation: Optional["LlmGeneration"] = None

    @classmethod
    def load(cls, bindings: Any, model_directory: str, stream: MlxStream) -> "LlmModel":
        """
        Load a model from a local directory.

        Raises:
            InvalidArgumentError: If ``model_directory`` is empty
            NativeCallError: If the native loader rejects the directory
        """
        if not model_directory:
            raise InvalidArgumentError("model_directory", model_directory, "Must not be empty.")

        path = str(model_directory).encode("utf-8")
        model = cls.acquire(
            bindings,
            "model_load",
            lambda out: bindings.model_load(out, path, stream),
            model_directory=str(model_directory),
        )
        logger.debug("Loaded model from %s", model_directory)
        return model

    @property
    def generation_active(self) -> bool:
        return self._active_generation is not None

    @property
    def active_generation(self) -> Optional["LlmGeneration"]:
        return self._active_generation

    def _attach_generation(self, generation: "LlmGeneration") -> None:
        self._active_generation = generation

    def _release_generation(self, generation: "LlmGeneration") -> None:
        # Only the generation that holds the slot may clear it.
        if self._active_generation is generation:
            self._active_generation = None

    def dispose(self) -> None:
        """
        Free the native model context.

        Any generation running against this model must be cancelled and freed
        first; :meth:`MlxLlm.dispose` takes care of that ordering.
        """
        if not self._disposed:
            logger.debug("Freeing model %s", self.model_directory)
        super().dispose()

    close = dispose

    def __repr__(self) -> str:
        status = "disposed" if self._disposed else "live"
        return f"LlmModel(directory={self.model_directory!r}, status={status})"
