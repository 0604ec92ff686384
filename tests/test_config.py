"""
Tests for sampling options and model configuration.
"""

import math

import pytest


class TestSamplingOptions:
    def test_defaults(self):
        from mlx_ffi import SamplingOptions, StopHandling

        options = SamplingOptions()
        assert options.temperature == 0.8
        assert options.top_p == 0.95
        assert options.top_k == 40
        assert options.max_tokens == 256
        assert options.repetition_penalty == 1.0
        assert options.seed is None
        assert options.stop_sequences == ()
        assert options.stop_handling is StopHandling.TRUNCATE
        options.validate()

    def test_is_immutable(self):
        import dataclasses

        from mlx_ffi import SamplingOptions

        options = SamplingOptions()
        with pytest.raises(dataclasses.FrozenInstanceError):
            options.temperature = 0.1

    def test_lists_are_stored_as_tuples(self):
        from mlx_ffi import SamplingOptions, StopHandling

        options = SamplingOptions(stop_sequences=["END", "\n\n"], stop_handling="include_stop")
        assert options.stop_sequences == ("END", "\n\n")
        assert options.stop_handling is StopHandling.INCLUDE_STOP
        assert options.stop_handling.native_value == 1

    def test_replace(self):
        from mlx_ffi import SamplingOptions

        options = SamplingOptions(max_tokens=64)
        greedy = options.replace(temperature=0.0)

        assert greedy.temperature == 0.0
        assert greedy.max_tokens == 64
        assert options.temperature == 0.8

    @pytest.mark.parametrize(
        "changes, argument",
        [
            ({"temperature": -0.1}, "temperature"),
            ({"top_p": 0.0}, "top_p"),
            ({"top_p": 1.5}, "top_p"),
            ({"top_k": -1}, "top_k"),
            ({"max_tokens": 0}, "max_tokens"),
            ({"repetition_penalty": 0.0}, "repetition_penalty"),
            ({"temperature": math.nan}, "temperature"),
            ({"top_p": math.nan}, "top_p"),
            ({"repetition_penalty": math.nan}, "repetition_penalty"),
            ({"seed": -5}, "seed"),
            ({"stop_sequences": ["END", ""]}, "stop_sequences[1]"),
        ],
    )
    def test_validate_names_first_bad_field(self, changes, argument):
        from mlx_ffi import InvalidArgumentError, SamplingOptions

        with pytest.raises(InvalidArgumentError) as exc_info:
            SamplingOptions(**changes).validate()
        assert exc_info.value.argument == argument

    def test_first_invalid_field_wins(self):
        from mlx_ffi import InvalidArgumentError, SamplingOptions

        with pytest.raises(InvalidArgumentError) as exc_info:
            SamplingOptions(top_p=2.0, max_tokens=0).validate()
        assert exc_info.value.argument == "top_p"

    def test_boundaries_are_valid(self):
        from mlx_ffi import SamplingOptions

        SamplingOptions(temperature=0.0, top_p=1.0, top_k=0, max_tokens=1, seed=0).validate()

    def test_dict_round_trip(self):
        from mlx_ffi import SamplingOptions

        options = SamplingOptions(seed=42, stop_sequences=["END"], max_tokens=10)
        d = options.to_dict()

        assert d["stop_sequences"] == ["END"]
        assert d["stop_handling"] == "truncate"
        assert SamplingOptions.from_dict(d) == options

    def test_from_dict_ignores_unknown_keys(self):
        from mlx_ffi import SamplingOptions

        options = SamplingOptions.from_dict({"max_tokens": 12, "stream": True})
        assert options.max_tokens == 12


class TestModelConfig:
    def test_requires_directory(self):
        from mlx_ffi import InvalidArgumentError, ModelConfig

        with pytest.raises(InvalidArgumentError) as exc_info:
            ModelConfig()
        assert exc_info.value.argument == "model_directory"

    def test_to_dict(self):
        from mlx_ffi import ModelConfig, SamplingOptions

        config = ModelConfig(
            model_directory="./model",
            use_gpu_default_stream=True,
            default_options=SamplingOptions(max_tokens=32),
        )
        d = config.to_dict()
        assert d["model_directory"] == "./model"
        assert d["library_path"] is None
        assert d["use_gpu_default_stream"] is True
        assert d["default_options"]["max_tokens"] == 32

    def test_from_dict_builds_options(self):
        from mlx_ffi import ModelConfig, SamplingOptions

        config = ModelConfig.from_dict(
            {
                "model_directory": "./model",
                "default_options": {"temperature": 0.0, "stop_sequences": ["END"]},
            }
        )
        assert isinstance(config.default_options, SamplingOptions)
        assert config.default_options.stop_sequences == ("END",)

    def test_save_and_load(self, tmp_path):
        from mlx_ffi import ModelConfig, SamplingOptions

        path = tmp_path / "config.json"
        config = ModelConfig(
            model_directory="./model",
            library_path="/opt/lib/libmlxc.dylib",
            default_options=SamplingOptions(seed=7),
        )
        config.save(str(path))

        loaded = ModelConfig.load(str(path))
        assert loaded == config
