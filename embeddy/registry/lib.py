"""Persisted alias registry.

Maps aliases to remote model ids and local download directories. The whole
registry is stored as one JSON document which is rewritten atomically on
every mutation: the new content goes to a temporary file in the same
directory, is fsynced, and then replaces the old file with os.replace().
A crash at any point leaves either the old or the new registry on disk.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from embeddy.core.errors import (
    AliasConflictError,
    ModelNotFoundError,
    StorageCorruptError,
)

from .models import REGISTRY_VERSION, RegistryEntry, is_valid_remote_id, model_dir_name

logger = logging.getLogger(__name__)


class RegistryStore:
    """Durable alias -> RegistryEntry mapping.

    Reads are served from an in-memory snapshot that is refreshed whenever
    the file on disk changes, so pulls made by another process (e.g. the CLI
    while a server is running) become visible without a restart.

    Example:
        >>> store = RegistryStore(data_dir / "registry.json", data_dir / "models")
        >>> store.insert("minilm", "sentence-transformers/all-MiniLM-L6-v2", path)
        >>> store.resolve("minilm").remote_id
        'sentence-transformers/all-MiniLM-L6-v2'
    """

    def __init__(self, path: Path | str, models_dir: Path | str | None = None):
        """Initialize the store.

        Args:
            path: Registry file location.
            models_dir: Directory of per-model downloads, used to resolve
                remote ids that were downloaded but never registered.
                Defaults to a "models" directory beside the registry file.
        """
        self._path = Path(path)
        self._models_dir = (
            Path(models_dir) if models_dir is not None else self._path.parent / "models"
        )
        self._lock = threading.RLock()
        self._entries: dict[str, RegistryEntry] | None = None
        self._stamp: tuple[int, int] | None = None

    @property
    def path(self) -> Path:
        """Registry file location."""
        return self._path

    @property
    def models_dir(self) -> Path:
        """Directory of per-model downloads."""
        return self._models_dir

    # =========================================================================
    # Reading
    # =========================================================================

    def load(self) -> dict[str, RegistryEntry]:
        """Read the registry from disk.

        Returns:
            Mapping of alias to entry; empty if the file does not exist.

        Raises:
            StorageCorruptError: If the file cannot be read or parsed.
        """
        if not self._path.exists():
            return {}

        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageCorruptError(
                f"Registry file {self._path} is unreadable: {e}"
            ) from e

        models = document.get("models") if isinstance(document, dict) else None
        if not isinstance(models, dict):
            raise StorageCorruptError(
                f"Registry file {self._path} has no 'models' mapping"
            )

        entries: dict[str, RegistryEntry] = {}
        for alias, data in models.items():
            try:
                entries[alias] = RegistryEntry.from_dict(alias, data)
            except (KeyError, TypeError) as e:
                raise StorageCorruptError(
                    f"Registry file {self._path} has a malformed entry '{alias}'"
                ) from e
        return entries

    def _file_stamp(self) -> tuple[int, int] | None:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _snapshot(self) -> dict[str, RegistryEntry]:
        """Current entries, reloaded if the file changed since the last read."""
        with self._lock:
            stamp = self._file_stamp()
            if self._entries is None or stamp != self._stamp:
                self._entries = self.load()
                self._stamp = stamp
            return self._entries

    def get(self, alias: str) -> RegistryEntry | None:
        """Look up an entry by alias only."""
        return self._snapshot().get(alias)

    def list(self) -> list[RegistryEntry]:
        """All entries, ordered by alias."""
        entries = self._snapshot()
        return [entries[alias] for alias in sorted(entries)]

    def resolve(self, name: str) -> RegistryEntry:
        """Resolve an alias or a remote id to an entry.

        Resolution order:
            1. Alias match.
            2. First registered entry (alias order) whose remote_id is `name`.
            3. A prior download of `name` under models_dir; returned as an
               unpersisted entry whose alias is the remote id itself.

        Raises:
            ModelNotFoundError: If none of the above apply.
        """
        entries = self._snapshot()
        entry = entries.get(name)
        if entry is not None:
            return entry

        for alias in sorted(entries):
            if entries[alias].remote_id == name:
                return entries[alias]

        if is_valid_remote_id(name):
            candidate = self._models_dir / model_dir_name(name)
            if (candidate / "config.json").is_file():
                logger.debug(f"Resolved '{name}' to unregistered download {candidate}")
                return RegistryEntry(alias=name, remote_id=name, local_path=candidate)

        raise ModelNotFoundError(name)

    # =========================================================================
    # Writing
    # =========================================================================

    def insert(
        self,
        alias: str,
        remote_id: str,
        local_path: Path | str,
        *,
        replace: bool = True,
    ) -> RegistryEntry:
        """Add or overwrite an entry and persist the registry atomically.

        Args:
            alias: Entry key.
            remote_id: Hub identifier.
            local_path: Directory holding the downloaded files.
            replace: When False, an existing entry for `alias` bound to a
                different remote id raises AliasConflictError, and an
                identical existing entry is returned unchanged.

        Returns:
            The stored entry.
        """
        local_path = Path(local_path)
        with self._lock:
            entries = dict(self._snapshot())
            existing = entries.get(alias)
            if existing is not None and not replace:
                if existing.remote_id != remote_id:
                    raise AliasConflictError(alias, existing.remote_id, remote_id)
                if existing.local_path == local_path:
                    return existing

            entry = RegistryEntry(alias=alias, remote_id=remote_id, local_path=local_path)
            entries[alias] = entry
            self._write(entries)
            logger.info(f"Registered '{alias}' -> {remote_id}")
            return entry

    def remove(self, alias: str) -> RegistryEntry:
        """Delete an entry and persist the registry atomically.

        Raises:
            ModelNotFoundError: If the alias is not registered.
        """
        with self._lock:
            entries = dict(self._snapshot())
            entry = entries.pop(alias, None)
            if entry is None:
                raise ModelNotFoundError(alias)
            self._write(entries)
            logger.info(f"Unregistered '{alias}'")
            return entry

    def _write(self, entries: dict[str, RegistryEntry]) -> None:
        """Atomically replace the registry file with `entries`."""
        document = {
            "version": REGISTRY_VERSION,
            "models": {alias: entries[alias].to_dict() for alias in sorted(entries)},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        self._entries = entries
        self._stamp = self._file_stamp()


__all__ = ["RegistryStore"]
