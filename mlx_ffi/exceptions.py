"""
mlx_ffi exception hierarchy for structured error handling.

Every native call reports success or failure through an integer status code.
This module turns non-zero codes into :class:`NativeCallError` and defines the
errors raised by the wrapper itself when a caller misuses a handle.

Status codes are never interpreted here: they are reported verbatim so they
can be looked up in the native library's documentation.
"""

from typing import Optional


class MlxError(Exception):
    """
    Base exception for all mlx_ffi errors.

    Attributes:
        message: Human-readable error message
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r})"


class NativeCallError(MlxError):
    """
    A native call returned a non-zero status code.

    Attributes:
        operation: Catalogue name of the failed call (e.g. "generation_start")
        code: Status code exactly as returned by the native library

    Example:
        >>> try:
        ...     llm.tokenize(text)
        ... except NativeCallError as e:
        ...     print(e.operation, e.code)
    """

    def __init__(self, operation: str, code: int, message: Optional[str] = None):
        text = f"{operation} failed with code {code}"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
        self.operation = operation
        self.code = code

    def __repr__(self) -> str:
        return f"NativeCallError(operation={self.operation!r}, code={self.code})"


class InvalidStateError(MlxError, RuntimeError):
    """
    A handle was used in a state that does not allow the operation.

    Raised when:
    - A disposed handle is accessed
    - A scalar is read from an array with more than one element
    - The native library hands back a null data pointer for a non-empty array
    """

    pass


class InvalidArgumentError(InvalidStateError, ValueError):
    """
    A caller-supplied argument was rejected before any native call was made.

    A kind of :class:`InvalidStateError`, so both caller mistakes can be
    handled together.

    Attributes:
        argument: Name of the first offending argument
        value: The rejected value
    """

    def __init__(self, argument: str, value: object, reason: str):
        super().__init__(f"Invalid {argument} ({value!r}): {reason}")
        self.argument = argument
        self.value = value


class GenerationConflictError(MlxError, RuntimeError):
    """
    A generation was requested while the model is already running one.

    Example:
        >>> stream = llm.generate("Hello")
        >>> next(stream)
        >>> llm.generate("Another")  # raises GenerationConflictError
    """

    pass


class LibraryNotFoundError(MlxError, OSError):
    """The native MLX shared library could not be located."""

    pass


def raise_for_status(code: int, operation: str) -> None:
    """
    Raise :class:`NativeCallError` if a native status code is non-zero.

    Args:
        code: Return code from the native call (0 = success)
        operation: Catalogue name of the call, reported on failure

    Example:
        >>> raise_for_status(0, "array_eval")  # Does nothing
        >>> raise_for_status(7, "divide")  # Raises NativeCallError
    """
    if code != 0:
        raise NativeCallError(operation, code)
