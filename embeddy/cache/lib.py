"""In-memory cache of loaded models.

Loads are deduplicated per key: the first caller for a key runs the loader
while every concurrent caller for the same key waits on a shared future and
receives the same model or the same exception. Keys are independent, so a
slow load of one model never delays requests for another.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from typing import Any, TypeVar

import numpy as np

from embeddy.core.errors import InferenceError
from embeddy.engine import EngineHandle, InferenceEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (alias, device)
CacheKey = tuple[str, str]


class SingleFlight:
    """Run at most one call per key at a time and share its outcome.

    The internal lock only guards the map of in-flight futures; `fn` always
    runs outside it. The slot is cleared as soon as `fn` returns or raises and
    before waiters are woken, so any later call for the same key starts afresh.

    Example:
        >>> flight = SingleFlight()
        >>> flight.do("minilm", lambda: expensive_download())
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: dict[Hashable, Future] = {}

    def do(self, key: Hashable, fn: Callable[[], T], timeout: float | None = None) -> T:
        """Run `fn` for `key`, or wait for the call already running.

        Args:
            key: Deduplication key.
            fn: Zero-argument callable producing the result.
            timeout: Seconds a waiter waits before giving up. Does not apply
                to the caller running `fn`, and never cancels the call.

        Raises:
            TimeoutError: If a waiter's timeout elapses first.
            Exception: Whatever `fn` raised, re-raised in every caller.
        """
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            logger.debug(f"Waiting for in-flight call '{key}'")
            return future.result(timeout=timeout)

        try:
            result = fn()
        except BaseException as e:
            self._release(key)
            future.set_exception(e)
            raise
        self._release(key)
        future.set_result(result)
        return result

    def _release(self, key: Hashable) -> None:
        with self._lock:
            self._calls.pop(key, None)

    def in_flight(self) -> set[Hashable]:
        """Keys with a call currently running."""
        with self._lock:
            return set(self._calls)


class LoadedModel:
    """A model resident in memory and bound to a device.

    Immutable once constructed and safe to share between threads. When the
    engine is not reentrant, embed() calls on this model are serialized by a
    lock owned by the model, so different models still run in parallel.
    """

    def __init__(
        self,
        alias: str,
        device: str,
        handle: EngineHandle,
        engine: InferenceEngine,
        remote_id: str | None = None,
    ):
        self.alias = alias
        self.device = device
        self.handle = handle
        self.engine = engine
        self.remote_id = remote_id or alias
        self._lock = threading.Lock() if not engine.reentrant else None

    @property
    def dimension(self) -> int:
        """Length of every vector this model produces."""
        return self.handle.dimension

    @property
    def key(self) -> CacheKey:
        return (self.alias, self.device)

    def embed(self, texts: list[str]) -> np.ndarray:
        """Embed `texts`, one row per input in input order.

        Raises:
            InferenceError: If the engine fails or returns the wrong shape.
        """
        guard = self._lock if self._lock is not None else contextlib.nullcontext()
        with guard:
            vectors = self.engine.embed(self.handle, texts)

        vectors = np.asarray(vectors, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            raise InferenceError(
                f"Model '{self.alias}' returned shape {vectors.shape} "
                f"for {len(texts)} inputs"
            )
        return vectors

    def __repr__(self) -> str:
        return (
            f"LoadedModel(alias={self.alias!r}, device={self.device!r}, "
            f"dimension={self.dimension})"
        )


class ModelCache:
    """Loaded models keyed by (alias, device).

    Unbounded by default: a model stays resident until evicted explicitly.
    With `max_models` set, inserting beyond the bound drops the least
    recently used model. Evicted models stay valid for callers that already
    hold them.

    Example:
        >>> cache = ModelCache()
        >>> model = cache.get_or_load(("minilm", "cpu"), load_minilm)
        >>> cache.get_or_load(("minilm", "cpu"), load_minilm) is model
        True
    """

    def __init__(self, max_models: int | None = None):
        """Initialize the cache.

        Args:
            max_models: Maximum resident models; None for no limit.
        """
        if max_models is not None and max_models < 1:
            raise ValueError(f"max_models must be positive, got {max_models}")
        self._max_models = max_models
        self._models: OrderedDict[CacheKey, LoadedModel] = OrderedDict()
        self._lock = threading.Lock()
        self._flight = SingleFlight()

    @property
    def max_models(self) -> int | None:
        return self._max_models

    def get_or_load(
        self,
        key: CacheKey,
        loader: Callable[[], LoadedModel],
        timeout: float | None = None,
    ) -> LoadedModel:
        """Return the cached model for `key`, loading it at most once.

        Args:
            key: (alias, device) pair.
            loader: Produces the model; runs outside every cache-wide lock.
            timeout: Seconds to wait for a load started by another caller.

        Raises:
            TimeoutError: If waiting on another caller's load timed out.
            Exception: The loader's exception, shared by all waiters.
        """
        model = self.get(key)
        if model is not None:
            logger.debug(f"Cache hit for {key}")
            return model
        return self._flight.do(key, lambda: self._load(key, loader), timeout=timeout)

    def _load(self, key: CacheKey, loader: Callable[[], LoadedModel]) -> LoadedModel:
        # A previous leader may have finished between the miss and the claim
        model = self.get(key)
        if model is not None:
            return model

        model = loader()
        with self._lock:
            self._models[key] = model
            self._models.move_to_end(key)
            if self._max_models is not None:
                while len(self._models) > self._max_models:
                    evicted, _ = self._models.popitem(last=False)
                    logger.info(f"Evicted least recently used model {evicted}")
        return model

    def get(self, key: CacheKey) -> LoadedModel | None:
        """Cached model for `key`, or None. Never triggers a load."""
        if self._max_models is None:
            return self._models.get(key)
        with self._lock:
            model = self._models.get(key)
            if model is not None:
                self._models.move_to_end(key)
            return model

    def evict(self, key: CacheKey, model: LoadedModel | None = None) -> bool:
        """Drop one cached model. Returns True if it was resident.

        Args:
            key: (alias, device) pair.
            model: Only evict if this exact model is the one resident.
        """
        with self._lock:
            resident = self._models.get(key)
            removed = resident is not None and (model is None or resident is model)
            if removed:
                del self._models[key]
        if removed:
            logger.info(f"Evicted model {key}")
        return removed

    def evict_alias(self, alias: str) -> int:
        """Drop every cached load of `alias`. Returns the number dropped."""
        with self._lock:
            keys = [key for key in self._models if key[0] == alias]
            for key in keys:
                del self._models[key]
        if keys:
            logger.info(f"Evicted {len(keys)} load(s) of '{alias}'")
        return len(keys)

    def loaded(self) -> list[LoadedModel]:
        """Resident models, least recently used first."""
        with self._lock:
            return list(self._models.values())

    def loading(self) -> set[Any]:
        """Keys whose load is currently in progress."""
        return self._flight.in_flight()

    def __contains__(self, key: object) -> bool:
        return key in self._models

    def __len__(self) -> int:
        return len(self._models)


__all__ = ["CacheKey", "LoadedModel", "ModelCache", "SingleFlight"]
