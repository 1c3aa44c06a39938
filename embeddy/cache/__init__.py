"""Loaded model cache with per-key load deduplication."""

from .lib import CacheKey, LoadedModel, ModelCache, SingleFlight

__all__ = ["CacheKey", "LoadedModel", "ModelCache", "SingleFlight"]
