"""
Tests for the native sampling-option marshaler and the transient allocator.
"""

import ctypes

import pytest


class TestNativeAllocator:
    def test_counts_allocations_and_frees(self):
        from mlx_ffi import NativeAllocator

        allocator = NativeAllocator()
        buf = allocator.string("stop")
        arr = allocator.array(ctypes.c_int, [1, 2, 3])

        assert allocator.live == 2
        assert buf.value == b"stop"
        assert list(arr) == [1, 2, 3]

        allocator.free(buf)
        allocator.free(arr)
        assert allocator.live == 0
        assert allocator.allocations == allocator.frees == 2

    def test_double_free_is_rejected(self):
        from mlx_ffi import InvalidStateError, NativeAllocator

        allocator = NativeAllocator()
        buf = allocator.string("x")
        allocator.free(buf)

        with pytest.raises(InvalidStateError):
            allocator.free(buf)

    def test_unknown_buffer_is_rejected(self):
        from mlx_ffi import InvalidStateError, NativeAllocator

        with pytest.raises(InvalidStateError):
            NativeAllocator().free(ctypes.create_string_buffer(b"x"))


class TestNativeSamplingOptions:
    def test_block_mirrors_options(self):
        from mlx_ffi import NativeAllocator, SamplingOptions, StopHandling
        from mlx_ffi.llm import NativeSamplingOptions

        options = SamplingOptions(
            temperature=0.5,
            top_p=0.9,
            top_k=10,
            max_tokens=32,
            repetition_penalty=1.1,
            seed=1234,
            stop_sequences=["END", "\n\n"],
            stop_handling=StopHandling.INCLUDE_STOP,
        )
        allocator = NativeAllocator()

        with NativeSamplingOptions.allocate(options, allocator) as native:
            block = native.pointer.contents
            assert block.temperature == pytest.approx(0.5)
            assert block.top_p == pytest.approx(0.9)
            assert block.top_k == 10
            assert block.max_tokens == 32
            assert block.repetition_penalty == pytest.approx(1.1)
            assert block.has_seed
            assert block.seed == 1234
            assert block.stop_sequence_count == 2
            assert block.stop_sequences[0] == b"END"
            assert block.stop_sequences[1] == b"\n\n"
            assert block.stop_handling == 1

            # two stop strings, the pointer array and the block
            assert allocator.live == 4

        assert allocator.live == 0

    def test_no_seed_and_no_stops(self):
        from mlx_ffi import NativeAllocator, SamplingOptions
        from mlx_ffi.llm import NativeSamplingOptions

        allocator = NativeAllocator()
        with NativeSamplingOptions.allocate(SamplingOptions(), allocator) as native:
            block = native.pointer.contents
            assert not block.has_seed
            assert block.stop_sequence_count == 0
            assert not block.stop_sequences
            assert allocator.live == 1

        assert allocator.live == 0

    def test_release_is_idempotent(self):
        from mlx_ffi import NativeAllocator, SamplingOptions
        from mlx_ffi.llm import NativeSamplingOptions

        allocator = NativeAllocator()
        native = NativeSamplingOptions.allocate(
            SamplingOptions(stop_sequences=["a", "b", "c"]), allocator
        )
        native.release()
        native.release()

        assert allocator.frees == allocator.allocations == 5

    def test_released_when_native_call_fails(self):
        from mlx_ffi import NativeAllocator, SamplingOptions
        from mlx_ffi.llm import NativeSamplingOptions

        allocator = NativeAllocator()
        with pytest.raises(RuntimeError):
            with NativeSamplingOptions.allocate(
                SamplingOptions(stop_sequences=["END"]), allocator
            ):
                raise RuntimeError("native call failed")

        assert allocator.live == 0

    def test_invalid_options_allocate_nothing(self):
        from mlx_ffi import InvalidArgumentError, NativeAllocator, SamplingOptions
        from mlx_ffi.llm import NativeSamplingOptions

        allocator = NativeAllocator()
        with pytest.raises(InvalidArgumentError) as exc_info:
            NativeSamplingOptions.allocate(
                SamplingOptions(stop_sequences=["ok", ""]), allocator
            )

        assert exc_info.value.argument == "stop_sequences[1]"
        assert allocator.allocations == 0

    def test_unencodable_stop_frees_earlier_buffers(self):
        from mlx_ffi import NativeAllocator, SamplingOptions
        from mlx_ffi.llm import NativeSamplingOptions

        allocator = NativeAllocator()
        with pytest.raises(UnicodeEncodeError):
            NativeSamplingOptions.allocate(
                SamplingOptions(stop_sequences=["ok", "\ud800"]), allocator
            )

        assert allocator.live == 0
        assert allocator.frees == allocator.allocations == 1

    def test_failed_block_allocation_frees_stop_buffers(self, monkeypatch):
        from mlx_ffi import NativeAllocator, SamplingOptions
        from mlx_ffi.llm import NativeSamplingOptions

        allocator = NativeAllocator()

        def out_of_memory(struct_type):
            raise MemoryError("no room for the parameter block")

        monkeypatch.setattr(allocator, "struct", out_of_memory)
        with pytest.raises(MemoryError):
            NativeSamplingOptions.allocate(
                SamplingOptions(stop_sequences=["a", "b"]), allocator
            )

        assert allocator.live == 0
        assert allocator.frees == allocator.allocations == 3
