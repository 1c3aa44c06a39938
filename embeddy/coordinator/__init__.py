"""Coordinator for pulling models and serving embeddings.

Example:
    >>> from embeddy.coordinator import create_coordinator
    >>> coordinator = create_coordinator()
    >>> coordinator.pull("sentence-transformers/all-MiniLM-L6-v2", alias="minilm")
    >>> result = coordinator.embed("minilm", ["Hello, world!"])
    >>> result.vectors.shape
    (1, 384)
"""

from .lib import Coordinator, EmbeddingResult, create_coordinator, default_alias

__all__ = ["Coordinator", "EmbeddingResult", "create_coordinator", "default_alias"]
