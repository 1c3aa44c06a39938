"""Local sentence-transformers inference engine.

Loads encoder models from a local directory with sentence-transformers.
Directories without a sentence-transformers configuration get a mean
pooling head on top of the transformer, so plain Hugging Face encoder
checkpoints produce one vector per text as well.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import numpy as np

from embeddy.core.errors import (
    DeviceUnavailableError,
    InferenceError,
    UnsupportedArchitectureError,
    WeightsCorruptError,
)
from embeddy.environment import GPUCapabilities, check_device_available

from .base import EngineHandle, InferenceEngine

logger = logging.getLogger(__name__)

# Encoder families sentence-transformers can pool into sentence embeddings
SUPPORTED_MODEL_TYPES = frozenset(
    {
        "albert",
        "bert",
        "camembert",
        "deberta",
        "deberta-v2",
        "distilbert",
        "electra",
        "modernbert",
        "mpnet",
        "nomic_bert",
        "roberta",
        "xlm-roberta",
    }
)

_DIMENSION_KEYS = ("hidden_size", "n_embd", "dim", "d_model")


def read_model_config(local_path: Path) -> dict[str, Any]:
    """Read config.json from a model directory.

    Raises:
        WeightsCorruptError: If the file is missing or not a JSON object.
    """
    config_path = Path(local_path) / "config.json"
    try:
        config = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise WeightsCorruptError(f"Failed to read config {config_path}: {e}") from e
    if not isinstance(config, dict):
        raise WeightsCorruptError(f"Config {config_path} is not a JSON object")
    return config


def config_dimension(config: dict[str, Any]) -> int | None:
    """Embedding width declared by a model config, if any."""
    for key in _DIMENSION_KEYS:
        value = config.get(key)
        if isinstance(value, int) and value > 0:
            return value
    return None


class SentenceTransformerEngine(InferenceEngine):
    """Inference engine backed by sentence-transformers.

    Fast tokenizers are not safe to share between threads, so this engine
    declares itself non-reentrant and callers serialize embed() per model.

    Example:
        >>> engine = SentenceTransformerEngine()
        >>> handle = engine.load(path, "cpu")
        >>> engine.embed(handle, ["login form", "dashboard"]).shape
        (2, 384)
    """

    reentrant = False

    def __init__(
        self,
        normalize: bool = False,
        batch_size: int = 32,
        capabilities: GPUCapabilities | None = None,
    ):
        """Initialize the engine.

        Args:
            normalize: L2-normalize output vectors.
            batch_size: Texts per forward pass.
            capabilities: Pre-computed GPU capabilities; detected per load
                when omitted.
        """
        self._normalize = normalize
        self._batch_size = batch_size
        self._capabilities = capabilities

    def load(self, local_path: Path, device: str) -> EngineHandle:
        config = read_model_config(local_path)
        model_type = str(config.get("model_type", "bert")).lower()
        if model_type not in SUPPORTED_MODEL_TYPES:
            raise UnsupportedArchitectureError(
                f"Model type '{model_type}' is not a supported encoder "
                f"(supported: {', '.join(sorted(SUPPORTED_MODEL_TYPES))})"
            )

        check_device_available(device, self._capabilities)

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers required for model loading. "
                "Install with: pip install sentence-transformers"
            ) from e

        logger.info(f"Loading model from {local_path} on '{device}'")
        try:
            model = SentenceTransformer(str(local_path), device=device)
        except Exception as e:
            if device != "cpu" and "cuda" in str(e).lower():
                raise DeviceUnavailableError(
                    f"Failed to initialize device '{device}': {e}"
                ) from e
            raise WeightsCorruptError(f"Failed to load model files: {e}") from e

        dimension = model.get_sentence_embedding_dimension() or config_dimension(config)
        if not dimension:
            raise WeightsCorruptError("Could not determine embedding dimension")

        logger.info(
            f"Model loaded: type={model_type}, dimension={dimension}, device={device}"
        )
        return EngineHandle(
            model=model,
            dimension=int(dimension),
            device=device,
            model_type=model_type,
        )

    def embed(self, handle: EngineHandle, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, handle.dimension), dtype=np.float32)

        logger.debug(f"Encoding {len(texts)} texts")
        try:
            embeddings = handle.model.encode(
                texts,
                batch_size=self._batch_size,
                convert_to_numpy=True,
                normalize_embeddings=self._normalize,
                show_progress_bar=False,
            )
        except Exception as e:
            raise InferenceError(f"Embedding failed: {e}") from e
        return np.asarray(embeddings, dtype=np.float32)


__all__ = [
    "SUPPORTED_MODEL_TYPES",
    "SentenceTransformerEngine",
    "config_dimension",
    "read_model_config",
]
