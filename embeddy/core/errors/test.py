"""Tests for the error hierarchy."""

import pytest

from .lib import (
    AliasConflictError,
    DeviceUnavailableError,
    DownloadFailedError,
    EmbeddyError,
    FetchError,
    IncompleteModelError,
    InferenceError,
    InvalidInputError,
    LoadTimeoutError,
    ModelLoadError,
    ModelNotFoundError,
    StorageCorruptError,
    UnsupportedArchitectureError,
    WeightsCorruptError,
)


class TestErrorHierarchy:
    """Tests for error classes and their status codes."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error_cls",
        [
            ModelNotFoundError,
            InvalidInputError,
            AliasConflictError,
            StorageCorruptError,
            DownloadFailedError,
            IncompleteModelError,
            UnsupportedArchitectureError,
            DeviceUnavailableError,
            WeightsCorruptError,
            InferenceError,
            LoadTimeoutError,
        ],
    )
    def test_all_derive_from_base(self, error_cls):
        assert issubclass(error_cls, EmbeddyError)

    @pytest.mark.unit
    def test_fetch_and_load_groups(self):
        assert issubclass(IncompleteModelError, FetchError)
        assert issubclass(DownloadFailedError, FetchError)
        assert issubclass(DeviceUnavailableError, ModelLoadError)
        assert issubclass(WeightsCorruptError, ModelLoadError)

    @pytest.mark.unit
    def test_status_codes(self):
        assert ModelNotFoundError("x").status_code == 404
        assert InvalidInputError("bad").status_code == 400
        assert AliasConflictError("a", "b", "c").status_code == 409
        assert DownloadFailedError("net").status_code == 500
        assert InferenceError("nan").status_code == 500
        assert LoadTimeoutError("slow").status_code == 503

    @pytest.mark.unit
    def test_messages_are_single_line(self):
        error = AliasConflictError("minilm", "org/a", "org/b")
        assert "\n" not in str(error)
        assert "minilm" in str(error)
        assert error.existing == "org/a"

    @pytest.mark.unit
    def test_incomplete_lists_missing_files(self):
        error = IncompleteModelError("org/m", ["tokenizer.json", "config.json"])
        assert "tokenizer.json, config.json" in str(error)
        assert error.missing == ["tokenizer.json", "config.json"]
