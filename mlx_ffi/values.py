"""Native strings and integer vectors."""

import ctypes
from typing import Any, Callable, Union, overload

from .bindings import MlxString, MlxVectorInt
from .exceptions import raise_for_status
from .resource import NativeResource


class NativeString(NativeResource):
    """Owned ``mlx_string`` handle."""

    handle_type = MlxString
    free_operation = "string_free"

    def value(self) -> str:
        """Decode the string contents (a null data pointer reads as "")."""
        data = self._bindings.string_data(self.raw)
        if not data:
            return ""
        return data.decode("utf-8", errors="replace")

    def __str__(self) -> str:
        return self.value()


def take_string(bindings: Any, raw: MlxString) -> str:
    """Read a string handle and free it before returning."""
    string = NativeString(bindings, raw)
    try:
        return string.value()
    finally:
        string.dispose()


def read_string(bindings: Any, operation: str, invoke: Callable[[Any], int]) -> str:
    """Run a native call that writes a string, and return it as ``str``."""
    string = NativeString.acquire(bindings, operation, invoke)
    try:
        return string.value()
    finally:
        string.dispose()


class IntVector(NativeResource):
    """
    Owned ``mlx_vector_int`` handle.

    Supports ``len()``, indexing (including negative indices) and iteration.
    """

    handle_type = MlxVectorInt
    free_operation = "vector_int_free"

    def __len__(self) -> int:
        return int(self._bindings.vector_int_size(self.raw))

    @overload
    def __getitem__(self, index: int) -> int: ...

    @overload
    def __getitem__(self, index: slice) -> list[int]: ...

    def __getitem__(self, index: Union[int, slice]) -> Union[int, list[int]]:
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]

        size = len(self)
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError(f"IntVector index out of range (size {size})")

        out = ctypes.c_int()
        code = self._bindings.vector_int_get(ctypes.pointer(out), self.raw, index)
        raise_for_status(code, "vector_int_get")
        return out.value

    def to_list(self) -> list[int]:
        return [self[i] for i in range(len(self))]
