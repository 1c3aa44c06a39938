"""Tests for the coordinator, using the fake fetcher and engine."""

import shutil
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from embeddy.core.errors import (
    AliasConflictError,
    DeviceUnavailableError,
    DownloadFailedError,
    InvalidInputError,
    LoadTimeoutError,
    ModelNotFoundError,
)

from embeddy.registry import RegistryStore

from .lib import Coordinator, create_coordinator, default_alias

MINILM = "sentence-transformers/all-MiniLM-L6-v2"
MINILM_DIR = "sentence-transformers--all-MiniLM-L6-v2"
BGE = "BAAI/bge-base-en-v1.5"


def _concurrently(fn, count=12):
    barrier = threading.Barrier(count)

    def call(_):
        barrier.wait()
        try:
            return fn()
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(call, range(count)))


class TestPull:
    """Tests for pull()."""

    @pytest.mark.unit
    def test_default_alias(self):
        assert default_alias(MINILM) == "all-MiniLM-L6-v2"
        assert default_alias("bert-base-uncased") == "bert-base-uncased"

    @pytest.mark.unit
    def test_pull_registers_entry(self, coordinator, registry_store, data_dir):
        entry = coordinator.pull(MINILM, alias="minilm")

        assert entry.alias == "minilm"
        assert entry.remote_id == MINILM
        assert entry.local_path == data_dir / "models" / MINILM_DIR
        assert registry_store.get("minilm") == entry

    @pytest.mark.unit
    def test_pull_uses_default_alias(self, coordinator):
        assert coordinator.pull(MINILM).alias == "all-MiniLM-L6-v2"

    @pytest.mark.unit
    def test_repull_is_idempotent(self, coordinator, fake_fetcher):
        first = coordinator.pull(MINILM, alias="minilm")
        second = coordinator.pull(MINILM, alias="minilm")

        assert second == first
        assert fake_fetcher.downloads[MINILM] == 1
        assert len(coordinator.list_registered()) == 1

    @pytest.mark.unit
    def test_alias_conflict_fails_before_download(self, coordinator, fake_fetcher):
        coordinator.pull(MINILM, alias="m")

        with pytest.raises(AliasConflictError) as exc_info:
            coordinator.pull(BGE, alias="m")

        assert exc_info.value.existing == MINILM
        assert fake_fetcher.calls[BGE] == 0
        assert coordinator.store.get("m").remote_id == MINILM

    @pytest.mark.unit
    @pytest.mark.parametrize("remote_id", ["", "   ", "a//b", "../etc"])
    def test_invalid_remote_id(self, coordinator, remote_id):
        with pytest.raises(InvalidInputError):
            coordinator.pull(remote_id)

    @pytest.mark.unit
    def test_empty_alias(self, coordinator):
        with pytest.raises(InvalidInputError, match="Alias"):
            coordinator.pull(MINILM, alias="  ")

    @pytest.mark.unit
    def test_failed_download_leaves_registry_unchanged(
        self, coordinator, fake_fetcher, registry_store
    ):
        fake_fetcher.fail_with = DownloadFailedError("Could not download: 503")

        with pytest.raises(DownloadFailedError):
            coordinator.pull(MINILM, alias="minilm")

        assert registry_store.list() == []
        assert not registry_store.path.exists()

    @pytest.mark.unit
    def test_concurrent_pulls_download_once(self, coordinator, fake_fetcher):
        fake_fetcher.delay = 0.2

        results = _concurrently(lambda: coordinator.pull(MINILM, alias="minilm"))

        assert all(r.remote_id == MINILM for r in results)
        assert fake_fetcher.calls[MINILM] == 1
        assert fake_fetcher.downloads[MINILM] == 1


class TestEmbed:
    """Tests for embed()."""

    @pytest.mark.unit
    def test_minilm_scenario(self, coordinator):
        coordinator.pull(MINILM, alias="minilm")

        result = coordinator.embed("minilm", ["Hello, world!"])

        assert result.model == "minilm"
        assert result.dimension == 384
        assert result.vectors.shape == (1, 384)
        assert coordinator.health() == {
            "status": "ok",
            "loaded_models": ["minilm"],
            "device": "cpu",
        }

    @pytest.mark.unit
    def test_output_order_matches_input(self, coordinator, fake_engine):
        coordinator.pull(MINILM, alias="minilm")
        texts = [f"text {i}" for i in range(20)]

        vectors = coordinator.embed("minilm", texts).vectors

        for text, row in zip(texts, vectors):
            np.testing.assert_array_equal(row, fake_engine.vector(text, 384))

    @pytest.mark.unit
    def test_to_dict(self, coordinator):
        coordinator.pull(MINILM, alias="minilm")
        payload = coordinator.embed("minilm", ["a", "b"]).to_dict()

        assert payload["model"] == "minilm"
        assert payload["dimension"] == 384
        assert len(payload["embeddings"]) == 2
        assert all(isinstance(v, float) for v in payload["embeddings"][0])

    @pytest.mark.unit
    def test_embed_by_remote_id(self, coordinator):
        coordinator.pull(MINILM, alias="minilm")

        result = coordinator.embed(MINILM, ["x"])

        assert result.dimension == 384
        assert coordinator.list_loaded() == {"minilm"}

    @pytest.mark.unit
    def test_embed_unregistered_download(self, coordinator, fake_fetcher):
        fake_fetcher.ensure_local(BGE)

        result = coordinator.embed(BGE, ["x"])

        assert result.dimension == 768
        assert coordinator.list_registered() == []

    @pytest.mark.unit
    def test_empty_texts(self, coordinator, fake_engine):
        coordinator.pull(MINILM, alias="minilm")

        with pytest.raises(InvalidInputError, match="empty"):
            coordinator.embed("minilm", [])
        assert sum(fake_engine.loads.values()) == 0

    @pytest.mark.unit
    def test_unknown_model(self, coordinator):
        with pytest.raises(ModelNotFoundError):
            coordinator.embed("nope", ["x"])

    @pytest.mark.unit
    def test_unknown_device(self, coordinator):
        coordinator.pull(MINILM, alias="minilm")

        with pytest.raises(InvalidInputError, match="Unknown device"):
            coordinator.embed("minilm", ["x"], device="tpu")

    @pytest.mark.unit
    def test_loads_once_under_concurrency(self, coordinator, fake_engine):
        coordinator.pull(MINILM, alias="minilm")
        fake_engine.load_delay = 0.2

        results = _concurrently(lambda: coordinator.embed("minilm", ["Hello, world!"]))

        assert fake_engine.loads[MINILM_DIR] == 1
        for result in results:
            np.testing.assert_array_equal(result.vectors, results[0].vectors)

    @pytest.mark.unit
    def test_load_failure_reaches_all_waiters_then_retries(
        self, coordinator, fake_engine
    ):
        coordinator.pull(MINILM, alias="minilm")
        fake_engine.load_delay = 0.2
        fake_engine.fail_with = DeviceUnavailableError("CUDA device 0 not available")

        results = _concurrently(lambda: coordinator.embed("minilm", ["x"]))

        assert all(isinstance(r, DeviceUnavailableError) for r in results)
        assert fake_engine.loads[MINILM_DIR] == 1
        assert coordinator.list_loaded() == set()

        fake_engine.fail_with = None
        fake_engine.load_delay = 0.0
        assert coordinator.embed("minilm", ["x"]).dimension == 384
        assert fake_engine.loads[MINILM_DIR] == 2

    @pytest.mark.unit
    def test_loading_one_model_does_not_block_another(self, coordinator, fake_engine):
        coordinator.pull(MINILM, alias="minilm")
        coordinator.pull(BGE, alias="bge")
        coordinator.embed("minilm", ["warm"])
        fake_engine.load_delay = 1.0

        with ThreadPoolExecutor(max_workers=1) as pool:
            cold = pool.submit(coordinator.embed, "bge", ["cold"])
            time.sleep(0.1)

            begin = time.monotonic()
            coordinator.embed("minilm", ["hot"])
            elapsed = time.monotonic() - begin

            assert cold.result(5).dimension == 768

        assert elapsed < 0.5

    @pytest.mark.unit
    def test_deleted_files_are_restored(self, coordinator, fake_fetcher):
        entry = coordinator.pull(MINILM, alias="minilm")
        shutil.rmtree(entry.local_path)

        result = coordinator.embed("minilm", ["x"])

        assert result.dimension == 384
        assert fake_fetcher.downloads[MINILM] == 2


class TestLifecycle:
    """Tests for unload() and remove()."""

    @pytest.mark.unit
    def test_unload(self, coordinator):
        coordinator.pull(MINILM, alias="minilm")
        coordinator.embed("minilm", ["x"])

        assert coordinator.unload("minilm") is True
        assert coordinator.unload("minilm") is False
        assert coordinator.list_loaded() == set()

    @pytest.mark.unit
    def test_remove_unregisters_and_unloads(self, coordinator):
        entry = coordinator.pull(MINILM, alias="minilm")
        coordinator.embed("minilm", ["x"])

        removed = coordinator.remove("minilm")

        assert removed.alias == "minilm"
        assert coordinator.list_loaded() == set()
        assert entry.local_path.exists()

    @pytest.mark.unit
    def test_remove_unknown(self, coordinator):
        with pytest.raises(ModelNotFoundError):
            coordinator.remove("ghost")

    @pytest.mark.unit
    def test_purge_deletes_files(self, coordinator):
        entry = coordinator.pull(MINILM, alias="minilm")

        coordinator.remove("minilm", purge=True)

        assert not entry.local_path.exists()

    @pytest.mark.unit
    def test_purge_keeps_files_shared_by_another_alias(self, coordinator):
        entry = coordinator.pull(MINILM, alias="minilm")
        coordinator.pull(MINILM, alias="mini")

        coordinator.remove("minilm", purge=True)

        assert entry.local_path.exists()
        assert coordinator.store.get("mini") is not None


class TestRebinding:
    """Tests for aliases that change while their model is resident or loading."""

    @pytest.mark.unit
    def test_remove_during_load_does_not_keep_model(self, coordinator, fake_engine):
        coordinator.pull(MINILM, alias="m")
        fake_engine.load_delay = 0.5

        with ThreadPoolExecutor(max_workers=1) as pool:
            pending = pool.submit(coordinator.embed, "m", ["x"])
            time.sleep(0.1)
            coordinator.remove("m")
            assert pending.result(5).dimension == 384

        assert coordinator.list_loaded() == set()

        fake_engine.load_delay = 0.0
        coordinator.pull(BGE, alias="m")
        assert coordinator.embed("m", ["x"]).dimension == 768

    @pytest.mark.unit
    def test_rebind_by_another_process_reloads(
        self, coordinator, registry_store, fake_fetcher, fake_engine
    ):
        coordinator.pull(MINILM, alias="m")
        assert coordinator.embed("m", ["x"]).dimension == 384

        other = Coordinator(
            RegistryStore(registry_store.path, registry_store.models_dir),
            fake_fetcher,
            fake_engine,
        )
        other.remove("m")
        other.pull(BGE, alias="m")

        result = coordinator.embed("m", ["x"])

        assert result.dimension == 768
        np.testing.assert_array_equal(result.vectors[0], fake_engine.vector("x", 768))
        assert [m.remote_id for m in coordinator.cache.loaded()] == [BGE]

    @pytest.mark.unit
    def test_removal_by_another_process_is_not_found(
        self, coordinator, registry_store, fake_fetcher, fake_engine
    ):
        coordinator.pull(MINILM, alias="m")
        coordinator.embed("m", ["x"])

        other = Coordinator(
            RegistryStore(registry_store.path, registry_store.models_dir),
            fake_fetcher,
            fake_engine,
        )
        other.remove("m")

        with pytest.raises(ModelNotFoundError):
            coordinator.embed("m", ["x"])


class TestLoadTimeout:
    """Tests for waiting on another request's load."""

    @pytest.mark.unit
    def test_waiter_times_out_with_domain_error(
        self, registry_store, fake_fetcher, fake_engine
    ):
        coordinator = Coordinator(
            registry_store, fake_fetcher, fake_engine, load_timeout=0.1
        )
        coordinator.pull(MINILM, alias="minilm")
        fake_engine.load_delay = 1.0

        with ThreadPoolExecutor(max_workers=1) as pool:
            leader = pool.submit(coordinator.embed, "minilm", ["x"])
            time.sleep(0.2)

            with pytest.raises(LoadTimeoutError, match="minilm"):
                coordinator.embed("minilm", ["x"])

            assert leader.result(5).dimension == 384

        assert fake_engine.loads[MINILM_DIR] == 1
        assert coordinator.embed("minilm", ["x"]).dimension == 384


class TestCreateCoordinator:
    """Tests for the environment-driven factory."""

    @pytest.mark.unit
    def test_uses_environment(self, embeddy_env, monkeypatch):
        monkeypatch.setenv("EMBEDDY_MAX_LOADED_MODELS", "3")

        coordinator = create_coordinator()

        assert coordinator.store.path == embeddy_env / "registry.json"
        assert coordinator.fetcher.models_dir == embeddy_env / "models"
        assert coordinator.device == "cpu"
        assert coordinator.cache.max_models == 3

    @pytest.mark.unit
    def test_overrides(self, embeddy_env, tmp_path):
        other = tmp_path / "other"

        coordinator = create_coordinator(data_dir=other, device="cuda")

        assert coordinator.store.path == other / "registry.json"
        assert (other / "models").is_dir()
        assert coordinator.device == "cuda:0"
        assert coordinator.cache.max_models is None

    @pytest.mark.unit
    def test_load_timeout_from_environment(self, embeddy_env, monkeypatch):
        monkeypatch.setenv("EMBEDDY_LOAD_TIMEOUT", "2.5")

        assert create_coordinator().load_timeout == 2.5
        assert create_coordinator(load_timeout=1.0).load_timeout == 1.0

    @pytest.mark.unit
    def test_no_load_timeout_by_default(self, embeddy_env):
        assert create_coordinator().load_timeout is None
