"""
Ownership wrapper for opaque native handles.

Every native value (array, string, vector, model, generation) is a context
pointer that must be passed back to its matching free call exactly once.
:class:`NativeResource` is the single place that enforces this: it frees
partially-written output handles when a constructor call fails, refuses access
after disposal and makes disposal idempotent.
"""

import ctypes
import logging
from typing import Any, Callable, ClassVar, Optional, TypeVar

from .exceptions import InvalidStateError, NativeCallError, raise_for_status

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="NativeResource")
T = TypeVar("T")


def free_partial(bindings: Any, free_operation: str, handle: Any) -> None:
    """
    Free a handle written by a native call that then reported failure.

    The primary failure is what the caller raises, so a failing free here is
    only logged.
    """
    if not handle.ctx:
        return
    code = getattr(bindings, free_operation)(handle)
    if code != 0:
        logger.warning(
            "%s failed with code %d while releasing a partial output handle",
            free_operation,
            code,
        )


class NativeResource:
    """
    Owns exactly one opaque native handle.

    Subclasses set :attr:`handle_type` (the ctypes handle struct) and
    :attr:`free_operation` (catalogue name of the matching free call).

    Args:
        bindings: Native bindings the handle was created with
        raw: The handle, already populated by the native library
    """

    handle_type: ClassVar[type] = ctypes.Structure
    free_operation: ClassVar[str] = ""

    def __init__(self, bindings: Any, raw: Any):
        self._bindings = bindings
        self._raw = raw
        self._disposed = False

    @classmethod
    def acquire(
        cls: type[R],
        bindings: Any,
        operation: str,
        invoke: Callable[[Any], int],
        **kwargs: Any,
    ) -> R:
        """
        Run a constructor-style native call and wrap the handle it writes.

        Args:
            bindings: Native bindings
            operation: Catalogue name of the call, used in errors
            invoke: Callable receiving a pointer to an empty handle and
                returning the native status code
            **kwargs: Extra constructor arguments for the subclass

        Raises:
            NativeCallError: If the call returns a non-zero status. Any handle
                the call wrote before failing is freed first.
        """
        out = cls.handle_type()
        code = invoke(ctypes.pointer(out))
        if code != 0:
            free_partial(bindings, cls.free_operation, out)
            raise NativeCallError(operation, code)
        return cls(bindings, out, **kwargs)

    @classmethod
    def wrap(cls: type[R], bindings: Any, raw: Any, operation: str, **kwargs: Any) -> R:
        """Adopt a handle returned by value from ``operation``."""
        if not raw.ctx:
            raise InvalidStateError(f"{operation} returned a null handle.")
        return cls(bindings, raw, **kwargs)

    @property
    def bindings(self) -> Any:
        return self._bindings

    @property
    def raw(self) -> Any:
        """The native handle. Raises InvalidStateError once disposed."""
        self._ensure_alive()
        return self._raw

    @property
    def disposed(self) -> bool:
        return self._disposed

    def with_handle(self, fn: Callable[[Any], T]) -> T:
        """Call ``fn`` with the live handle and return its result."""
        return fn(self.raw)

    def dispose(self) -> None:
        """
        Release the native handle.

        Calling this again is a no-op. The resource counts as disposed even if
        the native free call reports an error.
        """
        if self._disposed:
            return
        self._disposed = True
        code = getattr(self._bindings, self.free_operation)(self._raw)
        raise_for_status(code, self.free_operation)

    close = dispose

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise InvalidStateError(f"{self.__class__.__name__} has been disposed.")

    def __enter__(self: R) -> R:
        return self

    def __exit__(self, exc_type: Optional[type], exc_val: Any, exc_tb: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        status = "disposed" if self._disposed else "live"
        return f"{self.__class__.__name__}(status={status})"
