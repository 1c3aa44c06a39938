"""embeddy: lightweight embeddings-only model runtime."""

from embeddy.cache import LoadedModel, ModelCache
from embeddy.coordinator import Coordinator, EmbeddingResult, create_coordinator
from embeddy.core.errors import EmbeddyError
from embeddy.registry import RegistryEntry, RegistryStore

__version__ = "0.1.0"

__all__ = [
    # Coordinator
    "Coordinator",
    "EmbeddingResult",
    "create_coordinator",
    # Building blocks
    "LoadedModel",
    "ModelCache",
    "RegistryEntry",
    "RegistryStore",
    # Errors
    "EmbeddyError",
]
