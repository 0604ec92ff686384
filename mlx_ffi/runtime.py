"""
Mlx runtime - array construction and operations on a default stream.

All result-producing operations go through :meth:`MlxArray.acquire`, so a
failing native call never leaks the output handle it may have written.
"""

import ctypes
import logging
from typing import Any, Callable, Optional, Sequence

import numpy as np

from .array import MlxArray
from .bindings import Dtype, MlxStream, NativeBindings
from .exceptions import InvalidArgumentError, InvalidStateError, raise_for_status
from .values import read_string

logger = logging.getLogger(__name__)


def default_stream(bindings: Any, use_gpu: bool = False) -> MlxStream:
    """Return the library's default CPU (or GPU) stream."""
    if use_gpu:
        return bindings.default_gpu_stream_new()
    return bindings.default_cpu_stream_new()


def _validate_shape(shape: Sequence[int]) -> list[int]:
    dims = [int(d) for d in shape]
    if not dims:
        raise InvalidArgumentError("shape", shape, "Shape must not be empty.")
    if any(d < 0 for d in dims):
        raise InvalidArgumentError("shape", shape, "Shape dimensions must be >= 0.")
    return dims


def _shape_array(dims: Sequence[int]) -> ctypes.Array:
    return (ctypes.c_int * len(dims))(*dims)


class Mlx:
    """
    Entry point for array work against the MLX C library.

    Args:
        bindings: Loaded native bindings (or a compatible test double)
        stream: Stream to run operations on; defaults to the library's
            default CPU stream (GPU with ``use_gpu_default_stream``)

    Example:
        >>> mlx = Mlx.open()
        >>> a = mlx.scalar_float64(2.0)
        >>> b = mlx.scalar_float64(3.0)
        >>> (a + b).as_float64()
        5.0
    """

    def __init__(
        self,
        bindings: Any,
        stream: Optional[MlxStream] = None,
        use_gpu_default_stream: bool = False,
    ):
        self.bindings = bindings
        self.default_stream = (
            stream if stream is not None else default_stream(bindings, use_gpu_default_stream)
        )

    @classmethod
    def open(
        cls,
        library_path: Optional[str] = None,
        use_gpu_default_stream: bool = False,
    ) -> "Mlx":
        """Load the native library and create a runtime on its default stream."""
        bindings = NativeBindings.open(library_path)
        logger.debug("Using the default %s stream", "GPU" if use_gpu_default_stream else "CPU")
        return cls(bindings, use_gpu_default_stream=use_gpu_default_stream)

    def version(self) -> str:
        """Version string reported by the native library."""
        return read_string(self.bindings, "version", self.bindings.version)

    def synchronize(self) -> None:
        """Block until all work queued on the default stream has finished."""
        raise_for_status(self.bindings.synchronize(self.default_stream), "synchronize")

    # =========================================================================
    # Construction
    # =========================================================================

    def scalar_bool(self, value: bool) -> MlxArray:
        return self._wrap("array_new_bool", self.bindings.array_new_bool(bool(value)))

    def scalar_int(self, value: int) -> MlxArray:
        return self._wrap("array_new_int", self.bindings.array_new_int(int(value)))

    def scalar_float32(self, value: float) -> MlxArray:
        return self._wrap("array_new_float32", self.bindings.array_new_float32(float(value)))

    def scalar_float64(self, value: float) -> MlxArray:
        return self._wrap("array_new_float64", self.bindings.array_new_float64(float(value)))

    def from_float64(self, values: Any, shape: Optional[Sequence[int]] = None) -> MlxArray:
        """
        Copy host values into a new float64 array.

        Args:
            values: Sequence of numbers or a numpy array
            shape: Target shape; defaults to the shape of ``values``

        Raises:
            InvalidArgumentError: If ``values`` is empty or does not fit ``shape``
        """
        data = np.ascontiguousarray(values, dtype=np.float64)
        if data.size == 0:
            raise InvalidArgumentError("values", values, "Must not be empty.")
        dims = _validate_shape(shape if shape is not None else (data.shape or (1,)))
        expected = int(np.prod(dims))
        if expected != data.size:
            raise InvalidArgumentError(
                "shape", shape, f"Shape expects {expected} elements, got {data.size}."
            )

        flat = data.ravel()
        raw = self.bindings.array_new_data(
            flat.ctypes.data_as(ctypes.c_void_p),
            _shape_array(dims),
            len(dims),
            int(Dtype.FLOAT64),
        )
        return self._wrap("array_new_data", raw)

    def zeros(self, shape: Sequence[int], dtype: Dtype = Dtype.FLOAT32) -> MlxArray:
        return self._run_shape("zeros", shape, dtype)

    def ones(self, shape: Sequence[int], dtype: Dtype = Dtype.FLOAT32) -> MlxArray:
        return self._run_shape("ones", shape, dtype)

    def arange(
        self,
        start: float,
        stop: float,
        step: float = 1.0,
        dtype: Dtype = Dtype.FLOAT32,
    ) -> MlxArray:
        return self._run(
            "arange",
            lambda out: self.bindings.arange(
                out, start, stop, step, int(dtype), self.default_stream
            ),
        )

    def linspace(
        self,
        start: float,
        stop: float,
        num: int,
        dtype: Dtype = Dtype.FLOAT32,
    ) -> MlxArray:
        return self._run(
            "linspace",
            lambda out: self.bindings.linspace(
                out, start, stop, num, int(dtype), self.default_stream
            ),
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def add(self, a: MlxArray, b: MlxArray) -> MlxArray:
        return self._run_binary("add", a, b)

    def subtract(self, a: MlxArray, b: MlxArray) -> MlxArray:
        return self._run_binary("subtract", a, b)

    def multiply(self, a: MlxArray, b: MlxArray) -> MlxArray:
        return self._run_binary("multiply", a, b)

    def divide(self, a: MlxArray, b: MlxArray) -> MlxArray:
        return self._run_binary("divide", a, b)

    def matmul(self, a: MlxArray, b: MlxArray) -> MlxArray:
        return self._run_binary("matmul", a, b)

    def reshape(self, array: MlxArray, shape: Sequence[int]) -> MlxArray:
        self._require_owned(array)
        dims = _validate_shape(shape)
        shape_arr = _shape_array(dims)
        return self._run(
            "reshape",
            lambda out: self.bindings.reshape(
                out, array.raw, shape_arr, len(dims), self.default_stream
            ),
        )

    def astype(self, array: MlxArray, dtype: Dtype) -> MlxArray:
        self._require_owned(array)
        return self._run(
            "astype",
            lambda out: self.bindings.astype(out, array.raw, int(dtype), self.default_stream),
        )

    def sum(self, array: MlxArray, keepdims: bool = False) -> MlxArray:
        self._require_owned(array)
        return self._run(
            "sum", lambda out: self.bindings.sum(out, array.raw, keepdims, self.default_stream)
        )

    def mean(self, array: MlxArray, keepdims: bool = False) -> MlxArray:
        self._require_owned(array)
        return self._run(
            "mean", lambda out: self.bindings.mean(out, array.raw, keepdims, self.default_stream)
        )

    # =========================================================================
    # Host reads
    # =========================================================================

    def to_numpy(self, array: MlxArray) -> np.ndarray:
        """
        Copy an array's elements into a new flat float64 numpy array.

        Arrays of another dtype are converted through a temporary copy that is
        released before returning.
        """
        self._require_owned(array)
        source = array if array.dtype == Dtype.FLOAT64 else self.astype(array, Dtype.FLOAT64)
        try:
            source.eval()
            self.synchronize()
            length = source.size
            if length == 0:
                return np.empty(0, dtype=np.float64)
            ptr = self.bindings.array_data_float64(source.raw)
            if not ptr:
                raise InvalidStateError("array_data_float64 returned a null pointer.")
            return np.ctypeslib.as_array(ptr, shape=(length,)).copy()
        finally:
            if source is not array:
                source.dispose()

    def describe(self, array: MlxArray) -> str:
        self._require_owned(array)
        return read_string(
            self.bindings,
            "array_tostring",
            lambda out: self.bindings.array_tostring(out, array.raw),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _wrap(self, operation: str, raw: Any) -> MlxArray:
        return MlxArray.wrap(self.bindings, raw, operation, owner=self)

    def _run(self, operation: str, invoke: Callable[[Any], int]) -> MlxArray:
        return MlxArray.acquire(self.bindings, operation, invoke, owner=self)

    def _run_shape(self, operation: str, shape: Sequence[int], dtype: Dtype) -> MlxArray:
        dims = _validate_shape(shape)
        shape_arr = _shape_array(dims)
        func = getattr(self.bindings, operation)
        return self._run(
            operation,
            lambda out: func(out, shape_arr, len(dims), int(dtype), self.default_stream),
        )

    def _run_binary(self, operation: str, a: MlxArray, b: MlxArray) -> MlxArray:
        self._require_owned(a)
        self._require_owned(b)
        func = getattr(self.bindings, operation)
        return self._run(operation, lambda out: func(out, a.raw, b.raw, self.default_stream))

    def _require_owned(self, array: MlxArray) -> None:
        if array.owner is not self:
            raise InvalidArgumentError(
                "array", type(array).__name__, "Array belongs to a different Mlx instance."
            )
        array._ensure_alive()

    def __repr__(self) -> str:
        return f"Mlx(bindings={self.bindings!r})"
