"""Tests for the loaded model cache."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from embeddy.core.errors import DeviceUnavailableError, InferenceError
from embeddy.engine import EngineHandle

from .lib import LoadedModel, ModelCache, SingleFlight

THREADS = 16


def _loaded(engine, alias="minilm", device="cpu", dimension=8) -> LoadedModel:
    handle = EngineHandle(model=alias, dimension=dimension, device=device)
    return LoadedModel(alias, device, handle, engine)


def _run_concurrently(fn, count=THREADS):
    """Call fn() from `count` threads released at once; return outcomes."""
    barrier = threading.Barrier(count)

    def call():
        barrier.wait()
        try:
            return fn()
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(lambda _: call(), range(count)))


class TestSingleFlight:
    """Tests for per-key call deduplication."""

    @pytest.mark.unit
    def test_single_caller(self):
        assert SingleFlight().do("k", lambda: 42) == 42

    @pytest.mark.unit
    def test_concurrent_callers_share_one_call(self):
        flight = SingleFlight()
        calls = []

        def slow():
            calls.append(1)
            time.sleep(0.2)
            return object()

        results = _run_concurrently(lambda: flight.do("k", slow))

        assert len(calls) == 1
        assert all(r is results[0] for r in results)
        assert flight.in_flight() == set()

    @pytest.mark.unit
    def test_concurrent_callers_share_the_exception(self):
        flight = SingleFlight()
        error = RuntimeError("boom")

        def failing():
            time.sleep(0.2)
            raise error

        results = _run_concurrently(lambda: flight.do("k", failing))

        assert all(r is error for r in results)

    @pytest.mark.unit
    def test_slot_cleared_after_failure(self):
        flight = SingleFlight()

        def failing():
            raise ValueError("first")

        with pytest.raises(ValueError):
            flight.do("k", failing)

        assert flight.in_flight() == set()
        assert flight.do("k", lambda: "second") == "second"

    @pytest.mark.unit
    def test_slot_cleared_before_waiters_see_failure(self):
        flight = SingleFlight()
        started = threading.Event()
        release = threading.Event()

        def failing():
            started.set()
            release.wait(5)
            raise ValueError("first")

        def wait_then_retry():
            with pytest.raises(ValueError):
                flight.do("k", failing)
            return flight.in_flight(), flight.do("k", lambda: "second")

        with ThreadPoolExecutor(max_workers=2) as pool:
            leader = pool.submit(flight.do, "k", failing)
            started.wait(5)
            waiter = pool.submit(wait_then_retry)
            time.sleep(0.1)
            release.set()

            seen, retried = waiter.result(5)
            with pytest.raises(ValueError):
                leader.result(5)

        assert seen == set()
        assert retried == "second"

    @pytest.mark.unit
    def test_waiter_timeout_does_not_cancel_call(self):
        flight = SingleFlight()
        started = threading.Event()
        release = threading.Event()

        def slow():
            started.set()
            release.wait(5)
            return "done"

        with ThreadPoolExecutor(max_workers=1) as pool:
            leader = pool.submit(flight.do, "k", slow)
            started.wait(5)

            with pytest.raises(TimeoutError):
                flight.do("k", slow, timeout=0.05)

            release.set()
            assert leader.result(5) == "done"


class TestLoadedModel:
    """Tests for embed() on a resident model."""

    @pytest.mark.unit
    def test_embed_preserves_order(self, fake_engine):
        model = _loaded(fake_engine)
        texts = ["first", "second", "third"]

        vectors = model.embed(texts)

        assert vectors.shape == (3, 8)
        assert vectors.dtype == np.float32
        for text, row in zip(texts, vectors):
            np.testing.assert_array_equal(row, fake_engine.vector(text, 8))

    @pytest.mark.unit
    def test_row_count_mismatch(self, fake_engine, monkeypatch):
        model = _loaded(fake_engine)
        monkeypatch.setattr(
            fake_engine, "embed", lambda handle, texts: np.zeros((1, 8))
        )

        with pytest.raises(InferenceError, match="returned shape"):
            model.embed(["a", "b"])

    @pytest.mark.unit
    def test_non_reentrant_engine_is_serialized_per_model(self, fake_engine):
        fake_engine.reentrant = False
        fake_engine.embed_delay = 0.05
        model = _loaded(fake_engine)

        _run_concurrently(lambda: model.embed(["x"]), count=4)

        assert fake_engine.max_concurrent_embeds == 1

    @pytest.mark.unit
    def test_non_reentrant_models_run_in_parallel(self, fake_engine):
        fake_engine.reentrant = False
        fake_engine.embed_delay = 0.2
        first = _loaded(fake_engine, alias="a")
        second = _loaded(fake_engine, alias="b")

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(m.embed, ["x"]) for m in (first, second)]
            for future in futures:
                future.result(5)

        assert fake_engine.max_concurrent_embeds == 2


class TestModelCache:
    """Tests for get_or_load() and eviction."""

    @pytest.mark.unit
    def test_loads_once_under_concurrency(self, fake_engine):
        cache = ModelCache()
        loads = []

        def loader():
            loads.append(1)
            time.sleep(0.2)
            return _loaded(fake_engine)

        results = _run_concurrently(lambda: cache.get_or_load(("minilm", "cpu"), loader))

        assert len(loads) == 1
        assert all(r is results[0] for r in results)
        assert ("minilm", "cpu") in cache
        assert cache.loading() == set()

    @pytest.mark.unit
    def test_concurrent_failure_reaches_every_waiter(self):
        cache = ModelCache()
        loads = []
        error = DeviceUnavailableError("CUDA device 'cuda:0' not available")

        def loader():
            loads.append(1)
            time.sleep(0.2)
            raise error

        results = _run_concurrently(lambda: cache.get_or_load(("minilm", "cuda:0"), loader))

        assert len(loads) == 1
        assert all(r is error for r in results)
        assert len(cache) == 0

    @pytest.mark.unit
    def test_retry_after_failure(self, fake_engine):
        cache = ModelCache()
        key = ("minilm", "cpu")

        def failing():
            raise DeviceUnavailableError("not yet")

        with pytest.raises(DeviceUnavailableError):
            cache.get_or_load(key, failing)

        model = cache.get_or_load(key, lambda: _loaded(fake_engine))
        assert cache.get(key) is model

    @pytest.mark.unit
    def test_slow_load_does_not_block_other_alias(self, fake_engine):
        cache = ModelCache()
        ready = cache.get_or_load(("b", "cpu"), lambda: _loaded(fake_engine, alias="b"))
        started = threading.Event()
        release = threading.Event()

        def slow_loader():
            started.set()
            release.wait(5)
            return _loaded(fake_engine, alias="a")

        with ThreadPoolExecutor(max_workers=1) as pool:
            pending = pool.submit(cache.get_or_load, ("a", "cpu"), slow_loader)
            started.wait(5)

            begin = time.monotonic()
            assert cache.get_or_load(("b", "cpu"), slow_loader) is ready
            ready.embed(["hello"])
            assert time.monotonic() - begin < 1.0
            assert cache.loading() == {("a", "cpu")}

            release.set()
            pending.result(5)

    @pytest.mark.unit
    def test_same_alias_on_two_devices(self, fake_engine):
        cache = ModelCache()
        cpu = cache.get_or_load(("minilm", "cpu"), lambda: _loaded(fake_engine))
        mps = cache.get_or_load(
            ("minilm", "mps"), lambda: _loaded(fake_engine, device="mps")
        )

        assert cpu is not mps
        assert len(cache) == 2
        assert cache.evict_alias("minilm") == 2
        assert len(cache) == 0

    @pytest.mark.unit
    def test_evict(self, fake_engine):
        cache = ModelCache()
        key = ("minilm", "cpu")
        cache.get_or_load(key, lambda: _loaded(fake_engine))

        assert cache.evict(key) is True
        assert cache.evict(key) is False
        assert cache.get(key) is None

    @pytest.mark.unit
    def test_evict_only_matching_model(self, fake_engine):
        cache = ModelCache()
        key = ("minilm", "cpu")
        resident = cache.get_or_load(key, lambda: _loaded(fake_engine))

        assert cache.evict(key, _loaded(fake_engine)) is False
        assert cache.get(key) is resident
        assert cache.evict(key, resident) is True
        assert key not in cache

    @pytest.mark.unit
    def test_lru_bound(self, fake_engine):
        cache = ModelCache(max_models=2)
        for alias in ("a", "b"):
            cache.get_or_load((alias, "cpu"), lambda a=alias: _loaded(fake_engine, alias=a))

        # Touch "a" so "b" becomes least recently used
        cache.get(("a", "cpu"))
        cache.get_or_load(("c", "cpu"), lambda: _loaded(fake_engine, alias="c"))

        assert [m.alias for m in cache.loaded()] == ["a", "c"]

    @pytest.mark.unit
    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            ModelCache(max_models=0)
