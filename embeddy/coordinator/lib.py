"""Coordinator tying registry, fetcher, engine, and cache together.

A single Coordinator is shared by every CLI command and request handler.
All methods are blocking and thread-safe; async callers run them in worker
threads.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from embeddy.cache import CacheKey, LoadedModel, ModelCache, SingleFlight
from embeddy.config import (
    EnvVar,
    ensure_data_dirs,
    get_environment,
    get_load_timeout,
    get_max_loaded_models,
    get_models_dir,
    get_registry_path,
)
from embeddy.core.errors import (
    AliasConflictError,
    InvalidInputError,
    LoadTimeoutError,
    ModelLoadError,
    ModelNotFoundError,
)
from embeddy.engine import InferenceEngine
from embeddy.environment import parse_device
from embeddy.hub import ModelFetcher
from embeddy.registry import (
    RegistryEntry,
    RegistryStore,
    is_valid_alias,
    is_valid_remote_id,
)

logger = logging.getLogger(__name__)

# Reload attempts when the alias is rebound while its model loads
_STALE_RETRIES = 3


def default_alias(remote_id: str) -> str:
    """Alias used when none is given: the last path segment of the remote id."""
    return remote_id.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class EmbeddingResult:
    """Vectors produced for one embed request.

    Attributes:
        model: Model name as requested.
        dimension: Length of each vector.
        vectors: float32 array of shape (len(texts), dimension).
    """

    model: str
    dimension: int
    vectors: np.ndarray

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "model": self.model,
            "dimension": self.dimension,
            "embeddings": self.vectors.tolist(),
        }


class Coordinator:
    """Entry point for pulling models and producing embeddings.

    Downloads are deduplicated per remote id and loads per (alias, device),
    so concurrent requests for a cold model trigger exactly one download and
    one load while requests for other models proceed.

    Example:
        >>> coordinator = create_coordinator()
        >>> coordinator.pull("sentence-transformers/all-MiniLM-L6-v2", alias="minilm")
        >>> coordinator.embed("minilm", ["Hello, world!"]).dimension
        384
    """

    def __init__(
        self,
        store: RegistryStore,
        fetcher: ModelFetcher,
        engine: InferenceEngine,
        cache: ModelCache | None = None,
        device: str = "cpu",
        load_timeout: float | None = None,
    ):
        """Initialize the coordinator.

        Args:
            store: Alias registry.
            fetcher: Brings model files onto local storage.
            engine: Loads models and runs inference.
            cache: Loaded model cache; unbounded if omitted.
            device: Default device for embed() calls.
            load_timeout: Seconds a request waits on another request's load.
        """
        self._store = store
        self._fetcher = fetcher
        self._engine = engine
        self._cache = cache if cache is not None else ModelCache()
        self._device = parse_device(device)
        self._load_timeout = load_timeout
        self._downloads = SingleFlight()

    @property
    def store(self) -> RegistryStore:
        return self._store

    @property
    def fetcher(self) -> ModelFetcher:
        return self._fetcher

    @property
    def engine(self) -> InferenceEngine:
        return self._engine

    @property
    def cache(self) -> ModelCache:
        return self._cache

    @property
    def device(self) -> str:
        """Default device for embed() calls."""
        return self._device

    @property
    def load_timeout(self) -> float | None:
        """Seconds a request waits on another request's load, or None."""
        return self._load_timeout

    # =========================================================================
    # Registry operations
    # =========================================================================

    def pull(self, remote_id: str, alias: str | None = None) -> RegistryEntry:
        """Download a model and register it under an alias.

        Re-pulling the same (alias, remote id) pair is a no-op apart from
        verifying the files, which restores them if they were deleted.

        Args:
            remote_id: Hub identifier, e.g. "sentence-transformers/all-MiniLM-L6-v2".
            alias: Short name; defaults to the last segment of `remote_id`.

        Returns:
            The registered entry.

        Raises:
            InvalidInputError: If the remote id or alias is malformed.
            AliasConflictError: If the alias points to another remote id.
            FetchError: If the download fails. The registry is left unchanged.
        """
        remote_id = (remote_id or "").strip()
        if not remote_id:
            raise InvalidInputError("Model identifier must not be empty")
        if not is_valid_remote_id(remote_id):
            raise InvalidInputError(f"Invalid model identifier: {remote_id}")

        alias = alias.strip() if alias is not None else default_alias(remote_id)
        if not alias:
            raise InvalidInputError("Alias must not be empty")
        if not is_valid_alias(alias):
            raise InvalidInputError(f"Invalid alias: {alias}")

        # Fail before downloading anything
        existing = self._store.get(alias)
        if existing is not None and existing.remote_id != remote_id:
            raise AliasConflictError(alias, existing.remote_id, remote_id)

        logger.info(f"Pulling '{remote_id}' as '{alias}'")
        local_path = self._ensure_local(remote_id)
        return self._store.insert(alias, remote_id, local_path, replace=False)

    def list_registered(self) -> list[RegistryEntry]:
        """Registered models ordered by alias."""
        return self._store.list()

    def remove(self, alias: str, purge: bool = False) -> RegistryEntry:
        """Unregister an alias and unload it.

        Args:
            alias: Alias to remove.
            purge: Also delete the downloaded files, unless another alias
                still refers to the same remote id.

        Returns:
            The removed entry.

        Raises:
            ModelNotFoundError: If the alias is not registered.
        """
        entry = self._store.remove(alias)
        self._cache.evict_alias(alias)

        if purge:
            shared = [e.alias for e in self._store.list() if e.remote_id == entry.remote_id]
            if shared:
                logger.info(
                    f"Keeping files of '{entry.remote_id}', still used by {', '.join(shared)}"
                )
            else:
                self._fetcher.delete(entry.remote_id)
        return entry

    # =========================================================================
    # Inference
    # =========================================================================

    def embed(
        self,
        model_ref: str,
        texts: Sequence[str],
        device: str | None = None,
    ) -> EmbeddingResult:
        """Embed texts with a model, loading it on first use.

        Args:
            model_ref: Alias or remote id.
            texts: Non-empty list of texts.
            device: Device override; the coordinator default if None.

        Returns:
            EmbeddingResult with one vector per text, in input order.

        Raises:
            InvalidInputError: On empty texts or an unknown device string.
            ModelNotFoundError: If `model_ref` does not resolve.
            LoadTimeoutError: If another request's load outlasts the load timeout.
            FetchError, ModelLoadError, InferenceError: From the collaborators.
        """
        if not model_ref or not model_ref.strip():
            raise InvalidInputError("Model name must not be empty")
        if isinstance(texts, str):
            raise InvalidInputError("Input must be a list of strings")
        texts = list(texts)
        if not texts:
            raise InvalidInputError("Input texts must not be empty")
        if not all(isinstance(text, str) for text in texts):
            raise InvalidInputError("Input must be a list of strings")

        target = parse_device(device) if device else self._device
        entry = self._store.resolve(model_ref.strip())
        model = self._get_model(entry, target)
        vectors = model.embed(texts)
        return EmbeddingResult(model=model_ref, dimension=model.dimension, vectors=vectors)

    def list_loaded(self) -> set[str]:
        """Aliases with at least one resident load."""
        return {model.alias for model in self._cache.loaded()}

    def unload(self, alias: str) -> bool:
        """Drop every resident load of an alias. Returns True if any existed."""
        return self._cache.evict_alias(alias) > 0

    def health(self) -> dict[str, Any]:
        """Service status summary."""
        return {
            "status": "ok",
            "loaded_models": sorted(self.list_loaded()),
            "device": self._device,
        }

    # =========================================================================
    # Internals
    # =========================================================================

    def _ensure_local(self, remote_id: str) -> Path:
        return self._downloads.do(remote_id, lambda: self._fetcher.ensure_local(remote_id))

    def _get_model(self, entry: RegistryEntry, device: str) -> LoadedModel:
        key = (entry.alias, device)
        for _ in range(_STALE_RETRIES):
            model = self._cached_or_load(key, entry)
            if model.remote_id == entry.remote_id:
                self._drop_if_unbound(key, model)
                return model
            # Alias was rebound since this model was loaded
            logger.info(
                f"Dropping stale load of '{entry.alias}' ({model.remote_id}), "
                f"alias now points to '{entry.remote_id}'"
            )
            self._cache.evict(key, model)
        raise ModelLoadError(
            f"Model '{entry.alias}' kept changing while loading, try again"
        )

    def _cached_or_load(self, key: CacheKey, entry: RegistryEntry) -> LoadedModel:
        try:
            return self._cache.get_or_load(
                key,
                lambda: self._load(entry, key[1]),
                timeout=self._load_timeout,
            )
        except TimeoutError as e:
            raise LoadTimeoutError(
                f"Timed out after {self._load_timeout}s waiting for '{entry.alias}' to load"
            ) from e

    def _drop_if_unbound(self, key: CacheKey, model: LoadedModel) -> None:
        # A remove() racing the load may have run before the model was cached
        try:
            current = self._store.resolve(model.alias).remote_id
        except ModelNotFoundError:
            current = None
        if current != model.remote_id:
            logger.info(f"'{model.alias}' was removed while loading, not keeping it")
            self._cache.evict(key, model)

    def _load(self, entry: RegistryEntry, device: str) -> LoadedModel:
        local_path = self._ensure_local(entry.remote_id)
        logger.info(f"Loading '{entry.alias}' ({entry.remote_id}) on '{device}'")
        handle = self._engine.load(local_path, device)
        logger.info(
            f"Loaded '{entry.alias}': dimension={handle.dimension}, device={device}"
        )
        return LoadedModel(
            entry.alias, device, handle, self._engine, remote_id=entry.remote_id
        )


def create_coordinator(
    data_dir: Path | str | None = None,
    device: str | None = None,
    normalize: bool | None = None,
    max_models: int | None = None,
    load_timeout: float | None = None,
) -> Coordinator:
    """Build a coordinator from environment configuration.

    Uses the Hugging Face Hub fetcher and the sentence-transformers engine.
    Arguments override the corresponding EMBEDDY_* variables.

    Args:
        data_dir: Base data directory.
        device: Default device.
        normalize: L2-normalize output vectors.
        max_models: Loaded model bound; None reads EMBEDDY_MAX_LOADED_MODELS.
        load_timeout: Seconds to wait on another request's load; None reads
            EMBEDDY_LOAD_TIMEOUT.
    """
    from embeddy.engine import SentenceTransformerEngine
    from embeddy.hub import HubFetcher

    base = ensure_data_dirs(data_dir)
    models_dir = get_models_dir(base)
    store = RegistryStore(get_registry_path(base), models_dir)
    fetcher = HubFetcher(models_dir, token=get_environment(EnvVar.HF_TOKEN))
    engine = SentenceTransformerEngine(
        normalize=get_environment(EnvVar.EMBEDDY_NORMALIZE, override=normalize)
    )
    cache = ModelCache(max_models if max_models is not None else get_max_loaded_models())
    default_device = get_environment(EnvVar.EMBEDDY_DEVICE, override=device)
    if load_timeout is None:
        load_timeout = get_load_timeout()

    logger.debug(f"Coordinator using data dir {base}, device '{default_device}'")
    return Coordinator(
        store,
        fetcher,
        engine,
        cache=cache,
        device=default_device,
        load_timeout=load_timeout,
    )


__all__ = ["Coordinator", "EmbeddingResult", "create_coordinator", "default_alias"]
