"""Tests for the persisted registry store."""

import json
import os

import pytest

from embeddy.core.errors import (
    AliasConflictError,
    ModelNotFoundError,
    StorageCorruptError,
)

from .lib import RegistryStore
from .models import RegistryEntry, is_valid_alias, is_valid_remote_id, model_dir_name

MINILM = "sentence-transformers/all-MiniLM-L6-v2"


@pytest.fixture
def store(tmp_path) -> RegistryStore:
    """Registry store rooted in a temporary directory."""
    return RegistryStore(tmp_path / "registry.json", tmp_path / "models")


# =============================================================================
# Models
# =============================================================================


class TestModels:
    """Tests for registry data helpers."""

    @pytest.mark.unit
    def test_model_dir_name(self):
        assert model_dir_name(MINILM) == "sentence-transformers--all-MiniLM-L6-v2"
        assert model_dir_name("bert-base-uncased") == "bert-base-uncased"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "remote_id, valid",
        [
            (MINILM, True),
            ("bert-base-uncased", True),
            ("BAAI/bge-small-en-v1.5", True),
            ("", False),
            ("..", False),
            ("org/../etc", False),
            ("/absolute", False),
            ("a/b/c", False),
        ],
    )
    def test_is_valid_remote_id(self, remote_id, valid):
        assert is_valid_remote_id(remote_id) is valid

    @pytest.mark.unit
    def test_is_valid_alias(self):
        assert is_valid_alias("minilm")
        assert is_valid_alias("bge-small:v1.5")
        assert not is_valid_alias("org/model")
        assert not is_valid_alias("")

    @pytest.mark.unit
    def test_entry_dict_round_trip_keeps_timestamp(self, tmp_path):
        entry = RegistryEntry("m", MINILM, tmp_path)
        restored = RegistryEntry.from_dict("m", entry.to_dict())
        assert restored == entry


# =============================================================================
# Loading
# =============================================================================


class TestLoad:
    """Tests for reading the registry file."""

    @pytest.mark.unit
    def test_missing_file_is_empty(self, store):
        assert store.load() == {}
        assert store.list() == []

    @pytest.mark.unit
    def test_invalid_json_is_corrupt(self, store):
        store.path.write_text("{not json")
        with pytest.raises(StorageCorruptError):
            store.load()

    @pytest.mark.unit
    def test_missing_models_mapping_is_corrupt(self, store):
        store.path.write_text(json.dumps({"version": 1}))
        with pytest.raises(StorageCorruptError, match="'models'"):
            store.load()

    @pytest.mark.unit
    def test_malformed_entry_is_corrupt(self, store):
        store.path.write_text(json.dumps({"models": {"m": {"remote_id": 3}}}))
        with pytest.raises(StorageCorruptError, match="malformed entry 'm'"):
            store.load()

    @pytest.mark.unit
    def test_resolve_on_corrupt_file_raises(self, store):
        store.path.write_text("[]")
        with pytest.raises(StorageCorruptError):
            store.resolve("anything")


# =============================================================================
# Insert / Remove
# =============================================================================


class TestInsert:
    """Tests for adding entries."""

    @pytest.mark.unit
    def test_insert_persists(self, store, tmp_path):
        store.insert("minilm", MINILM, tmp_path / "models" / "x")

        document = json.loads(store.path.read_text())
        assert document["version"] == 1
        assert document["models"]["minilm"]["remote_id"] == MINILM

        reopened = RegistryStore(store.path, store.models_dir)
        assert reopened.resolve("minilm").remote_id == MINILM

    @pytest.mark.unit
    def test_insert_overwrites_by_default(self, store, tmp_path):
        store.insert("m", "org/a", tmp_path / "a")
        store.insert("m", "org/b", tmp_path / "b")
        assert store.get("m").remote_id == "org/b"
        assert len(store.list()) == 1

    @pytest.mark.unit
    def test_insert_without_replace_conflicts(self, store, tmp_path):
        store.insert("m", "org/a", tmp_path / "a")
        with pytest.raises(AliasConflictError):
            store.insert("m", "org/b", tmp_path / "b", replace=False)
        assert store.get("m").remote_id == "org/a"

    @pytest.mark.unit
    def test_insert_same_mapping_is_idempotent(self, store, tmp_path):
        first = store.insert("m", "org/a", tmp_path / "a", replace=False)
        second = store.insert("m", "org/a", tmp_path / "a", replace=False)
        assert first == second
        assert len(store.list()) == 1

    @pytest.mark.unit
    def test_list_is_sorted_by_alias(self, store, tmp_path):
        for alias in ["zeta", "alpha", "mid"]:
            store.insert(alias, f"org/{alias}", tmp_path / alias)
        assert [e.alias for e in store.list()] == ["alpha", "mid", "zeta"]

    @pytest.mark.unit
    def test_remove(self, store, tmp_path):
        store.insert("m", "org/a", tmp_path / "a")
        removed = store.remove("m")
        assert removed.alias == "m"
        assert store.get("m") is None
        with pytest.raises(ModelNotFoundError):
            store.remove("m")


class TestAtomicPersistence:
    """A failed or interrupted write never damages the previous registry."""

    @pytest.mark.unit
    def test_crash_before_replace_keeps_previous(self, store, tmp_path, monkeypatch):
        store.insert("m", "org/a", tmp_path / "a")
        before = store.path.read_text()

        def crash(src, dst):
            raise OSError("simulated crash before rename")

        monkeypatch.setattr("embeddy.registry.lib.os.replace", crash)
        with pytest.raises(OSError, match="simulated crash"):
            store.insert("other", "org/b", tmp_path / "b")

        assert store.path.read_text() == before
        reopened = RegistryStore(store.path, store.models_dir)
        assert [e.alias for e in reopened.list()] == ["m"]

    @pytest.mark.unit
    def test_leftover_temp_file_is_ignored(self, store, tmp_path):
        store.insert("m", "org/a", tmp_path / "a")
        (tmp_path / ".registry.json.abc.tmp").write_text('{"models": {"half')

        reopened = RegistryStore(store.path, store.models_dir)
        assert reopened.resolve("m").remote_id == "org/a"

    @pytest.mark.unit
    def test_failed_write_removes_temp_file(self, store, tmp_path, monkeypatch):
        def crash(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("embeddy.registry.lib.os.replace", crash)
        with pytest.raises(OSError):
            store.insert("m", "org/a", tmp_path / "a")

        assert not store.path.exists()
        assert [p for p in tmp_path.iterdir() if p.suffix == ".tmp"] == []


# =============================================================================
# Resolution
# =============================================================================


class TestResolve:
    """Tests for alias / remote id resolution."""

    @pytest.mark.unit
    def test_alias_first(self, store, tmp_path):
        store.insert("minilm", MINILM, tmp_path / "x")
        assert store.resolve("minilm").alias == "minilm"

    @pytest.mark.unit
    def test_remote_id_of_registered_entry(self, store, tmp_path):
        store.insert("b-alias", MINILM, tmp_path / "x")
        store.insert("a-alias", MINILM, tmp_path / "x")
        assert store.resolve(MINILM).alias == "a-alias"

    @pytest.mark.unit
    def test_prior_download_without_registration(self, store):
        model_dir = store.models_dir / model_dir_name(MINILM)
        model_dir.mkdir(parents=True)
        (model_dir / "config.json").write_text("{}")

        entry = store.resolve(MINILM)
        assert entry.alias == MINILM
        assert entry.local_path == model_dir
        assert store.list() == []

    @pytest.mark.unit
    def test_not_found(self, store):
        with pytest.raises(ModelNotFoundError, match="nope"):
            store.resolve("nope")

    @pytest.mark.unit
    def test_invalid_remote_id_is_not_found(self, store):
        with pytest.raises(ModelNotFoundError):
            store.resolve("..")

    @pytest.mark.unit
    def test_external_write_is_picked_up(self, store, tmp_path):
        """Entries written by another process become visible."""
        store.insert("m", "org/a", tmp_path / "a")
        other = RegistryStore(store.path, store.models_dir)
        other.insert("n", "org/b", tmp_path / "b")
        # Force a distinct stamp even on coarse-mtime filesystems
        stat = store.path.stat()
        os.utime(store.path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000))

        assert store.resolve("n").remote_id == "org/b"
