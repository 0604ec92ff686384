"""
End-to-end tests through real ctypes against a small compiled C library.

The library under tests/native/ implements a subset of the MLX C API. It is
built once per session with the system C compiler; the tests are skipped when
no compiler is available.
"""

import ctypes
import shutil
import subprocess
from pathlib import Path

import pytest

SOURCE = Path(__file__).parent / "native" / "fake_mlx.c"


@pytest.fixture(scope="module")
def library_path(tmp_path_factory):
    compiler = shutil.which("cc") or shutil.which("gcc") or shutil.which("clang")
    if compiler is None:
        pytest.skip("no C compiler available")

    output = tmp_path_factory.mktemp("native") / "libfakemlx.so"
    result = subprocess.run(
        [compiler, "-shared", "-fPIC", "-O1", "-o", str(output), str(SOURCE)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        pytest.skip(f"could not build the native test library: {result.stderr}")
    return str(output)


@pytest.fixture
def bindings(library_path):
    from mlx_ffi import NativeBindings

    native = NativeBindings.open(library_path)
    native.library.fake_live_handles.restype = ctypes.c_int
    native.library.fake_last_stop_count.restype = ctypes.c_int
    native.library.fake_last_first_stop.restype = ctypes.c_char_p
    return native


def live_handles(bindings):
    return bindings.library.fake_live_handles()


class TestArrays:
    def test_version(self, bindings):
        from mlx_ffi import Mlx

        assert Mlx(bindings).version() == "fake-mlx-c-1.0"
        assert live_handles(bindings) == 0

    def test_from_float64_and_sum(self, bindings):
        from mlx_ffi import Mlx

        mlx = Mlx(bindings)
        with mlx.from_float64([1.0, 2.0, 3.0, 4.0], shape=[2, 2]) as a:
            assert a.shape == (2, 2)
            assert a.nbytes == 32
            with a + a as doubled:
                assert doubled.to_list() == [2.0, 4.0, 6.0, 8.0]
            with a.sum() as total:
                assert total.as_float64() == 10.0

        assert live_handles(bindings) == 0

    def test_native_failure(self, bindings):
        from mlx_ffi import Mlx, NativeCallError

        mlx = Mlx(bindings)
        a = mlx.scalar_float64(1.0)
        with pytest.raises(NativeCallError) as exc_info:
            a / a
        assert exc_info.value.operation == "divide"
        assert exc_info.value.code == 7
        a.dispose()

    def test_no_leaks(self, bindings):
        from mlx_ffi import Mlx

        mlx = Mlx(bindings)
        arrays = [mlx.scalar_float64(float(i)) for i in range(5)]
        results = [x + x for x in arrays]
        for array in arrays + results:
            array.dispose()
            array.dispose()

        assert live_handles(bindings) == 0


class TestLlm:
    def test_tokenize_and_decode(self, bindings, tmp_path):
        from mlx_ffi import MlxLlm

        with MlxLlm.from_bindings(bindings, str(tmp_path)) as llm:
            tokens = llm.tokenize("cake", add_bos=True, add_eos=True)
            assert tokens == [1, 99, 97, 107, 101, 2]
            assert llm.decode(tokens) == "cake"

        assert live_handles(bindings) == 0

    def test_generate(self, bindings, tmp_path):
        from mlx_ffi import MlxLlm, SamplingOptions

        options = SamplingOptions(stop_sequences=["\n\n", "END"])
        with MlxLlm.from_bindings(bindings, str(tmp_path)) as llm:
            assert llm.generate_text("How do I make cake?", options) == "Mix flour and bake."
            assert bindings.library.fake_last_stop_count() == 2
            assert bindings.library.fake_last_first_stop() == b"\n\n"

        assert live_handles(bindings) == 0

    def test_early_stop_then_restart(self, bindings, tmp_path):
        from mlx_ffi import MlxLlm

        with MlxLlm.from_bindings(bindings, str(tmp_path)) as llm:
            stream = llm.generate("cake")
            assert next(stream) == "Mix "
            stream.close()
            assert not llm.generation_active

            assert list(llm.generate("cake")) == ["Mix ", "flour ", "and ", "bake."]

        assert live_handles(bindings) == 0

    def test_start_failure(self, bindings, tmp_path):
        from mlx_ffi import MlxLlm, NativeCallError

        with MlxLlm.from_bindings(bindings, str(tmp_path)) as llm:
            with pytest.raises(NativeCallError) as exc_info:
                llm.generate_text("__gen_error__")
            assert exc_info.value.code == 55
            assert not llm.generation_active
