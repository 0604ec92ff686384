"""
Tests for the HuggingFace Hub helpers.
"""

from unittest.mock import patch

import pytest


class TestDownloadModel:
    @patch("mlx_ffi.hub.HUGGINGFACE_HUB_AVAILABLE", True)
    @patch("mlx_ffi.hub.snapshot_download", create=True)
    def test_downloads_model_files(self, mock_download):
        from mlx_ffi.hub import MODEL_FILE_PATTERNS, download_model

        mock_download.return_value = "/cache/models--mlx-community--tiny"

        path = download_model("mlx-community/tiny", revision="main")

        assert path == "/cache/models--mlx-community--tiny"
        mock_download.assert_called_once_with(
            repo_id="mlx-community/tiny",
            revision="main",
            cache_dir=None,
            token=None,
            allow_patterns=MODEL_FILE_PATTERNS,
        )

    @patch("mlx_ffi.hub.HUGGINGFACE_HUB_AVAILABLE", False)
    def test_requires_huggingface_hub(self):
        from mlx_ffi.hub import download_model

        with pytest.raises(ImportError, match="huggingface-hub"):
            download_model("mlx-community/tiny")


class TestFromPretrained:
    def test_local_directory_skips_download(self, model_dir):
        from mlx_ffi.hub import from_pretrained
        from mlx_ffi.llm.engine import MlxLlm

        with patch("mlx_ffi.hub.download_model") as mock_download, patch.object(
            MlxLlm, "open"
        ) as mock_open:
            from_pretrained(model_dir, library_path="/opt/lib/libmlxc.so")

        mock_download.assert_not_called()
        mock_open.assert_called_once_with(
            model_dir,
            library_path="/opt/lib/libmlxc.so",
            use_gpu_default_stream=False,
        )

    def test_repo_id_downloads_first(self):
        from mlx_ffi import SamplingOptions
        from mlx_ffi.hub import from_pretrained
        from mlx_ffi.llm.engine import MlxLlm

        options = SamplingOptions(max_tokens=16)
        with patch("mlx_ffi.hub.download_model", return_value="/cache/tiny") as mock_download, \
                patch.object(MlxLlm, "open") as mock_open:
            from_pretrained("mlx-community/tiny", token="hf_x", default_options=options)

        mock_download.assert_called_once_with(
            "mlx-community/tiny", revision=None, cache_dir=None, token="hf_x"
        )
        mock_open.assert_called_once_with(
            "/cache/tiny",
            library_path=None,
            use_gpu_default_stream=False,
            default_options=options,
        )

    def test_classmethod_delegates(self):
        from mlx_ffi import MlxLlm

        with patch("mlx_ffi.hub.from_pretrained") as mock_from_pretrained:
            MlxLlm.from_pretrained("mlx-community/tiny", revision="v1")

        mock_from_pretrained.assert_called_once_with("mlx-community/tiny", revision="v1")


class TestPackage:
    def test_imports(self):
        import mlx_ffi

        assert hasattr(mlx_ffi, "Mlx")
        assert hasattr(mlx_ffi, "MlxLlm")
        assert hasattr(mlx_ffi, "SamplingOptions")
        assert hasattr(mlx_ffi, "from_pretrained")
        assert mlx_ffi.get_version() == mlx_ffi.__version__
