"""Data models for the model registry."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

REGISTRY_VERSION = 1

# Hub repo ids: optional namespace, then name. No empty or dot-only segments.
_REMOTE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][\w.-]*(/[A-Za-z0-9][\w.-]*)?$")
_ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9][\w.:-]*$")


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


def is_valid_remote_id(remote_id: str) -> bool:
    """Check that a remote id is a well-formed hub repo id."""
    return bool(_REMOTE_ID_PATTERN.match(remote_id))


def is_valid_alias(alias: str) -> bool:
    """Check that an alias is a single path-safe token."""
    return bool(_ALIAS_PATTERN.match(alias))


def model_dir_name(remote_id: str) -> str:
    """Directory name used for a remote id ("org/name" -> "org--name")."""
    return remote_id.strip("/").replace("/", "--")


@dataclass(frozen=True)
class RegistryEntry:
    """A registered model.

    Attributes:
        alias: Unique user-chosen short name (primary key).
        remote_id: Hub identifier, e.g. "sentence-transformers/all-MiniLM-L6-v2".
        local_path: Directory holding the downloaded files.
        downloaded_at: ISO-8601 UTC timestamp of the pull.
    """

    alias: str
    remote_id: str
    local_path: Path
    downloaded_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict (alias excluded, it is the key)."""
        return {
            "remote_id": self.remote_id,
            "local_path": str(self.local_path),
            "downloaded_at": self.downloaded_at,
        }

    @classmethod
    def from_dict(cls, alias: str, data: dict[str, Any]) -> RegistryEntry:
        """Build an entry from its persisted form.

        Raises:
            KeyError, TypeError: If required fields are missing or malformed.
        """
        remote_id = data["remote_id"]
        local_path = data["local_path"]
        if not isinstance(remote_id, str) or not isinstance(local_path, str):
            raise TypeError(f"Malformed registry entry for '{alias}'")
        return cls(
            alias=alias,
            remote_id=remote_id,
            local_path=Path(local_path),
            downloaded_at=str(data.get("downloaded_at", "")),
        )


__all__ = [
    "REGISTRY_VERSION",
    "RegistryEntry",
    "is_valid_alias",
    "is_valid_remote_id",
    "model_dir_name",
]
