"""Tests for model fetchers."""

from pathlib import Path

import pytest

from embeddy.core.errors import DownloadFailedError, IncompleteModelError

from .base import missing_files
from .lib import HubFetcher

MINILM = "sentence-transformers/all-MiniLM-L6-v2"


def _write_files(path: Path, names: list[str]) -> None:
    path.mkdir(parents=True, exist_ok=True)
    for name in names:
        (path / name).write_text("{}")


class FakeSnapshot:
    """Stand-in for huggingface_hub.snapshot_download.

    Writes the configured files on each call and records the call kwargs.
    """

    def __init__(self, *rounds: list[str], error: Exception | None = None):
        self.rounds = list(rounds)
        self.error = error
        self.calls: list[dict] = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        files = self.rounds.pop(0) if self.rounds else []
        _write_files(Path(kwargs["local_dir"]), files)
        return kwargs["local_dir"]


@pytest.fixture
def fetcher(tmp_path) -> HubFetcher:
    return HubFetcher(tmp_path / "models", token="hf_test")


def _patch_snapshot(monkeypatch, fake: FakeSnapshot) -> None:
    huggingface_hub = pytest.importorskip("huggingface_hub")
    monkeypatch.setattr(huggingface_hub, "snapshot_download", fake)


class TestMissingFiles:
    """Tests for completeness checks."""

    @pytest.mark.unit
    def test_complete_model(self, tmp_path):
        _write_files(tmp_path, ["config.json", "tokenizer.json", "model.safetensors"])
        assert missing_files(tmp_path) == []

    @pytest.mark.unit
    def test_pytorch_weights_are_accepted(self, tmp_path):
        _write_files(tmp_path, ["config.json", "tokenizer.json", "pytorch_model.bin"])
        assert missing_files(tmp_path) == []

    @pytest.mark.unit
    def test_reports_each_missing_file(self, tmp_path):
        _write_files(tmp_path, ["config.json"])
        assert missing_files(tmp_path) == [
            "tokenizer.json",
            "model.safetensors or pytorch_model.bin",
        ]


class TestHubFetcher:
    """Tests for HubFetcher.ensure_local."""

    @pytest.mark.unit
    def test_local_path_layout(self, fetcher, tmp_path):
        assert fetcher.local_path(MINILM) == (
            tmp_path / "models" / "sentence-transformers--all-MiniLM-L6-v2"
        )

    @pytest.mark.unit
    def test_complete_model_skips_network(self, fetcher, monkeypatch):
        fake = FakeSnapshot()
        _patch_snapshot(monkeypatch, fake)
        _write_files(
            fetcher.local_path(MINILM),
            ["config.json", "tokenizer.json", "model.safetensors"],
        )

        assert fetcher.ensure_local(MINILM) == fetcher.local_path(MINILM)
        assert fake.calls == []

    @pytest.mark.unit
    def test_downloads_safetensors_snapshot(self, fetcher, monkeypatch):
        fake = FakeSnapshot(["config.json", "tokenizer.json", "model.safetensors"])
        _patch_snapshot(monkeypatch, fake)

        path = fetcher.ensure_local(MINILM)

        assert fetcher.is_complete(path)
        assert len(fake.calls) == 1
        call = fake.calls[0]
        assert call["repo_id"] == MINILM
        assert call["token"] == "hf_test"
        assert "*.bin" in call["ignore_patterns"]

    @pytest.mark.unit
    def test_falls_back_to_pytorch_weights(self, fetcher, monkeypatch):
        fake = FakeSnapshot(["config.json", "tokenizer.json"], ["pytorch_model.bin"])
        _patch_snapshot(monkeypatch, fake)

        path = fetcher.ensure_local("org/legacy")

        assert (path / "pytorch_model.bin").is_file()
        assert fake.calls[1]["allow_patterns"] == ["pytorch_model.bin"]

    @pytest.mark.unit
    def test_missing_tokenizer_is_incomplete(self, fetcher, monkeypatch):
        fake = FakeSnapshot(["config.json", "model.safetensors"])
        _patch_snapshot(monkeypatch, fake)

        with pytest.raises(IncompleteModelError) as excinfo:
            fetcher.ensure_local("org/no-tokenizer")
        assert excinfo.value.missing == ["tokenizer.json"]

    @pytest.mark.unit
    def test_hub_error_becomes_download_failed(self, fetcher, monkeypatch):
        fake = FakeSnapshot(error=ConnectionError("network unreachable"))
        _patch_snapshot(monkeypatch, fake)

        with pytest.raises(DownloadFailedError, match="network unreachable"):
            fetcher.ensure_local(MINILM)

    @pytest.mark.unit
    def test_delete(self, fetcher):
        _write_files(fetcher.local_path(MINILM), ["config.json"])
        assert fetcher.delete(MINILM) is True
        assert not fetcher.local_path(MINILM).exists()
        assert fetcher.delete(MINILM) is False


@pytest.mark.integration
def test_real_download(tmp_path):
    """Downloads a small model from the hub (requires network)."""
    pytest.importorskip("huggingface_hub")
    fetcher = HubFetcher(tmp_path)

    path = fetcher.ensure_local(MINILM)

    assert fetcher.is_complete(path)
    assert not list(path.glob("*.onnx"))
