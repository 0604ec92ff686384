"""
Transient native memory for marshalling call arguments.

Buffers handed to a native call (parameter blocks, C strings, pointer arrays)
must stay alive for the duration of the call and be released afterwards.
:class:`NativeAllocator` hands out ctypes buffers and keeps them alive until
they are explicitly freed, counting both sides so tests can check that
nothing is left behind.
"""

import ctypes
from typing import Any, Sequence

from .exceptions import InvalidStateError


class NativeAllocator:
    """
    Tracks ctypes buffers from allocation until release.

    Example:
        >>> allocator = NativeAllocator()
        >>> buf = allocator.string("stop")
        >>> allocator.free(buf)
        >>> allocator.live
        0
    """

    def __init__(self) -> None:
        self._live: dict[int, Any] = {}
        self.allocations = 0
        self.frees = 0

    @property
    def live(self) -> int:
        """Number of buffers allocated and not yet freed."""
        return len(self._live)

    def string(self, text: str) -> ctypes.Array:
        """Allocate a NUL-terminated UTF-8 copy of ``text``."""
        return self._track(ctypes.create_string_buffer(text.encode("utf-8")))

    def array(self, ctype: Any, values: Sequence[Any]) -> ctypes.Array:
        """Allocate a C array of ``ctype`` initialised from ``values``."""
        return self._track((ctype * len(values))(*values))

    def struct(self, struct_type: type) -> ctypes.Structure:
        """Allocate a zero-initialised structure."""
        return self._track(struct_type())

    def free(self, buffer: Any) -> None:
        """Release a buffer. Freeing the same buffer twice is an error."""
        if self._live.pop(ctypes.addressof(buffer), None) is None:
            raise InvalidStateError("Buffer was not allocated here or is already freed.")
        self.frees += 1

    def _track(self, buffer: Any) -> Any:
        self._live[ctypes.addressof(buffer)] = buffer
        self.allocations += 1
        return buffer
