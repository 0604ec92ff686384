"""Shared fixtures for the mlx_ffi test suite."""

import json

import pytest

from fakes import FakeNative


@pytest.fixture
def fake():
    """A fresh in-process native library."""
    return FakeNative()


@pytest.fixture
def mlx(fake):
    from mlx_ffi import Mlx

    return Mlx(fake)


@pytest.fixture
def model_dir(tmp_path):
    """A directory laid out like an MLX model checkpoint."""
    path = tmp_path / "fake-model"
    path.mkdir()
    (path / "config.json").write_text(json.dumps({"model_type": "qwen2"}))
    (path / "tokenizer.json").write_text("{}")
    return str(path)


@pytest.fixture
def llm(fake, model_dir):
    from mlx_ffi import MlxLlm

    runtime = MlxLlm.from_bindings(fake, model_dir)
    yield runtime
    runtime.dispose()
