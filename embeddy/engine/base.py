"""Abstract base class for inference engines."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np


@dataclass(frozen=True)
class EngineHandle:
    """A model loaded by an engine and bound to a device.

    Attributes:
        model: Engine-specific object (tokenizer + weights).
        dimension: Output embedding vector dimension.
        device: Canonical device selector the model is bound to.
        model_type: Architecture declared in the model config.
    """

    model: Any
    dimension: int
    device: str
    model_type: str = "bert"


class InferenceEngine(ABC):
    """Abstract interface for turning model files into embeddings.

    Engines are stateless between calls: all per-model state lives in the
    EngineHandle returned by load().

    Attributes:
        reentrant: Whether embed() may run concurrently on one handle.
            When False, callers serialize embed() per handle.
    """

    reentrant: bool = True

    @abstractmethod
    def load(self, local_path: Path, device: str) -> EngineHandle:
        """Parse config, tokenizer, and weights and bind them to a device.

        Args:
            local_path: Directory holding the model files.
            device: Canonical device selector ("cpu", "cuda:0", "mps").

        Returns:
            Loaded handle.

        Raises:
            UnsupportedArchitectureError: If the model type is not an encoder.
            DeviceUnavailableError: If the device cannot be initialized.
            WeightsCorruptError: If model files fail to parse.
        """

    @abstractmethod
    def embed(self, handle: EngineHandle, texts: list[str]) -> np.ndarray:
        """Generate embeddings for a batch of texts.

        Args:
            handle: Handle returned by load().
            texts: Texts to embed.

        Returns:
            float32 array of shape (len(texts), handle.dimension); row i
            is the embedding of texts[i].

        Raises:
            InferenceError: On internal numerical failure.
        """

    @property
    def name(self) -> str:
        """Get engine name for logging."""
        return self.__class__.__name__


__all__ = ["EngineHandle", "InferenceEngine"]
