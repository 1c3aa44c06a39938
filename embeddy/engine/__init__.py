"""Inference engines.

Provides the InferenceEngine interface and its local implementation:
- InferenceEngine / EngineHandle: abstract base and loaded-model handle
- SentenceTransformerEngine: sentence-transformers on CPU, CUDA, or MPS
"""

from .base import EngineHandle, InferenceEngine
from .local import (
    SUPPORTED_MODEL_TYPES,
    SentenceTransformerEngine,
    config_dimension,
    read_model_config,
)

__all__ = [
    "InferenceEngine",
    "EngineHandle",
    "SentenceTransformerEngine",
    "SUPPORTED_MODEL_TYPES",
    "config_dimension",
    "read_model_config",
]
