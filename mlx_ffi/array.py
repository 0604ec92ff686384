"""
MlxArray - owned handle to a native array.

Metadata accessors read straight from the native handle. Element data is only
meaningful once the array has been evaluated and its stream synchronized, so
every host read does both first.
"""

import ctypes
from typing import TYPE_CHECKING, Any, Callable, Sequence

import numpy as np

from .bindings import Dtype, MlxArrayHandle
from .exceptions import InvalidStateError, MlxError, raise_for_status
from .resource import NativeResource

if TYPE_CHECKING:
    from .runtime import Mlx


class MlxArray(NativeResource):
    """
    Array living in native memory, created by an :class:`~mlx_ffi.Mlx` runtime.

    Example:
        >>> a = mlx.from_float64([1.0, 2.0, 3.0, 4.0], shape=[2, 2])
        >>> a.shape
        (2, 2)
        >>> (a + a).to_list()
        [2.0, 4.0, 6.0, 8.0]
        >>> a.dispose()
    """

    handle_type = MlxArrayHandle
    free_operation = "array_free"

    def __init__(self, bindings: Any, raw: MlxArrayHandle, owner: "Mlx"):
        super().__init__(bindings, raw)
        self._owner = owner

    @property
    def owner(self) -> "Mlx":
        return self._owner

    # =========================================================================
    # Metadata
    # =========================================================================

    @property
    def ndim(self) -> int:
        return int(self._bindings.array_ndim(self.raw))

    @property
    def size(self) -> int:
        """Total number of elements."""
        return int(self._bindings.array_size(self.raw))

    @property
    def itemsize(self) -> int:
        return int(self._bindings.array_itemsize(self.raw))

    @property
    def nbytes(self) -> int:
        return int(self._bindings.array_nbytes(self.raw))

    @property
    def dtype(self) -> Dtype:
        return Dtype(self._bindings.array_dtype(self.raw))

    @property
    def shape(self) -> tuple[int, ...]:
        rank = self.ndim
        if rank == 0:
            return ()
        dims = self._bindings.array_shape(self.raw)
        return tuple(dims[i] for i in range(rank))

    # =========================================================================
    # Evaluation and host reads
    # =========================================================================

    def eval(self) -> None:
        """Force any pending computation for this array."""
        raise_for_status(self._bindings.array_eval(self.raw), "array_eval")

    def to_numpy(self) -> np.ndarray:
        """Copy the elements into a new flat float64 numpy array."""
        return self._owner.to_numpy(self)

    def to_list(self) -> list[float]:
        return self.to_numpy().tolist()

    def as_float64(self) -> float:
        return self._read_scalar("array_item_float64", ctypes.c_double)

    def as_float32(self) -> float:
        return self._read_scalar("array_item_float32", ctypes.c_float)

    def as_int32(self) -> int:
        return self._read_scalar("array_item_int32", ctypes.c_int32)

    def as_bool(self) -> bool:
        return self._read_scalar("array_item_bool", ctypes.c_bool)

    def _read_scalar(self, operation: str, ctype: Any) -> Any:
        self._require_scalar()
        self.eval()
        self._owner.synchronize()
        out = ctype()
        code = getattr(self._bindings, operation)(ctypes.pointer(out), self.raw)
        raise_for_status(code, operation)
        return out.value

    def _require_scalar(self) -> None:
        self._ensure_alive()
        if self.size != 1:
            raise InvalidStateError(f"Expected a scalar array, got shape {self.shape}.")

    def describe(self) -> str:
        """Native string rendering of the array."""
        return self._owner.describe(self)

    # =========================================================================
    # Operations (delegate to the owning runtime)
    # =========================================================================

    def reshape(self, shape: Sequence[int]) -> "MlxArray":
        return self._owner.reshape(self, shape)

    def astype(self, dtype: Dtype) -> "MlxArray":
        return self._owner.astype(self, dtype)

    def add(self, other: "MlxArray") -> "MlxArray":
        return self._owner.add(self, other)

    def subtract(self, other: "MlxArray") -> "MlxArray":
        return self._owner.subtract(self, other)

    def multiply(self, other: "MlxArray") -> "MlxArray":
        return self._owner.multiply(self, other)

    def divide(self, other: "MlxArray") -> "MlxArray":
        return self._owner.divide(self, other)

    def matmul(self, other: "MlxArray") -> "MlxArray":
        return self._owner.matmul(self, other)

    def sum(self, keepdims: bool = False) -> "MlxArray":
        return self._owner.sum(self, keepdims=keepdims)

    def mean(self, keepdims: bool = False) -> "MlxArray":
        return self._owner.mean(self, keepdims=keepdims)

    def _binary(self, op: Callable[["MlxArray", "MlxArray"], "MlxArray"], other: Any) -> Any:
        if not isinstance(other, MlxArray):
            return NotImplemented
        return op(self, other)

    def __add__(self, other: Any) -> "MlxArray":
        return self._binary(self._owner.add, other)

    def __sub__(self, other: Any) -> "MlxArray":
        return self._binary(self._owner.subtract, other)

    def __mul__(self, other: Any) -> "MlxArray":
        return self._binary(self._owner.multiply, other)

    def __truediv__(self, other: Any) -> "MlxArray":
        return self._binary(self._owner.divide, other)

    def __matmul__(self, other: Any) -> "MlxArray":
        return self._binary(self._owner.matmul, other)

    def __repr__(self) -> str:
        if self._disposed:
            return "MlxArray(disposed)"
        try:
            return self.describe()
        except MlxError:
            return f"MlxArray(shape={self.shape}, dtype={self.dtype.name})"
