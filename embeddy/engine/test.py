"""Tests for inference engines."""

import json
from unittest.mock import MagicMock

import numpy as np
import pytest

from embeddy.core.errors import (
    DeviceUnavailableError,
    InferenceError,
    UnsupportedArchitectureError,
    WeightsCorruptError,
)
from embeddy.environment import GPUCapabilities

from .base import EngineHandle
from .local import SentenceTransformerEngine, config_dimension, read_model_config

CPU_ONLY = GPUCapabilities(torch_available=True)


def _write_config(path, **config):
    path.mkdir(parents=True, exist_ok=True)
    (path / "config.json").write_text(json.dumps(config))


class TestModelConfig:
    """Tests for config parsing helpers."""

    @pytest.mark.unit
    def test_missing_config(self, tmp_path):
        with pytest.raises(WeightsCorruptError, match="Failed to read config"):
            read_model_config(tmp_path)

    @pytest.mark.unit
    def test_config_must_be_object(self, tmp_path):
        (tmp_path / "config.json").write_text("[1, 2]")
        with pytest.raises(WeightsCorruptError, match="not a JSON object"):
            read_model_config(tmp_path)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "config, expected",
        [
            ({"hidden_size": 384}, 384),
            ({"n_embd": 768}, 768),
            ({"dim": 512}, 512),
            ({"vocab_size": 30522}, None),
        ],
    )
    def test_config_dimension(self, config, expected):
        assert config_dimension(config) == expected


class TestSentenceTransformerEngineLoad:
    """Load-time validation that runs before any weights are read."""

    @pytest.mark.unit
    def test_engine_is_not_reentrant(self):
        assert SentenceTransformerEngine.reentrant is False

    @pytest.mark.unit
    def test_unsupported_architecture(self, tmp_path):
        _write_config(tmp_path, model_type="gpt2", n_embd=768)
        engine = SentenceTransformerEngine(capabilities=CPU_ONLY)

        with pytest.raises(UnsupportedArchitectureError, match="gpt2"):
            engine.load(tmp_path, "cpu")

    @pytest.mark.unit
    def test_device_unavailable(self, tmp_path):
        _write_config(tmp_path, model_type="bert", hidden_size=384)
        engine = SentenceTransformerEngine(capabilities=CPU_ONLY)

        with pytest.raises(DeviceUnavailableError):
            engine.load(tmp_path, "cuda:0")

    @pytest.mark.unit
    def test_corrupt_weights(self, tmp_path):
        pytest.importorskip("sentence_transformers")
        _write_config(tmp_path, model_type="bert", hidden_size=384)
        (tmp_path / "tokenizer.json").write_text("not a tokenizer")
        (tmp_path / "model.safetensors").write_bytes(b"\x00garbage")
        engine = SentenceTransformerEngine(capabilities=CPU_ONLY)

        with pytest.raises(WeightsCorruptError):
            engine.load(tmp_path, "cpu")


class TestSentenceTransformerEngineEmbed:
    """Tests for embed() using a stub model object."""

    @pytest.mark.unit
    def test_embed_returns_float32_rows(self):
        model = MagicMock()
        model.encode.return_value = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float64)
        handle = EngineHandle(model=model, dimension=2, device="cpu")
        engine = SentenceTransformerEngine(normalize=True)

        result = engine.embed(handle, ["a", "b"])

        assert result.dtype == np.float32
        assert result.tolist() == [[1.0, 2.0], [3.0, 4.0]]
        kwargs = model.encode.call_args.kwargs
        assert kwargs["normalize_embeddings"] is True
        assert kwargs["show_progress_bar"] is False

    @pytest.mark.unit
    def test_embed_empty_batch(self):
        handle = EngineHandle(model=MagicMock(), dimension=8, device="cpu")
        result = SentenceTransformerEngine().embed(handle, [])
        assert result.shape == (0, 8)
        handle.model.encode.assert_not_called()

    @pytest.mark.unit
    def test_embed_failure_is_inference_error(self):
        model = MagicMock()
        model.encode.side_effect = RuntimeError("nan in attention")
        handle = EngineHandle(model=model, dimension=2, device="cpu")

        with pytest.raises(InferenceError, match="nan in attention"):
            SentenceTransformerEngine().embed(handle, ["x"])


@pytest.mark.integration
def test_minilm_end_to_end(tmp_path):
    """Loads all-MiniLM-L6-v2 from the hub and embeds text (requires network)."""
    pytest.importorskip("sentence_transformers")
    from embeddy.hub import HubFetcher

    path = HubFetcher(tmp_path).ensure_local("sentence-transformers/all-MiniLM-L6-v2")
    engine = SentenceTransformerEngine()
    handle = engine.load(path, "cpu")

    vectors = engine.embed(handle, ["Hello, world!", "Goodbye"])

    assert handle.dimension == 384
    assert vectors.shape == (2, 384)
    np.testing.assert_allclose(engine.embed(handle, ["Hello, world!"])[0], vectors[0], rtol=1e-5)
