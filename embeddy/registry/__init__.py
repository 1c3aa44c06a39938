"""Persisted model registry.

Maps user-chosen aliases to hub model ids and local download paths.

Example:
    >>> from embeddy.registry import RegistryStore
    >>> store = RegistryStore("~/.embeddy/registry.json")
    >>> for entry in store.list():
    ...     print(entry.alias, entry.remote_id)
"""

from .lib import RegistryStore
from .models import (
    REGISTRY_VERSION,
    RegistryEntry,
    is_valid_alias,
    is_valid_remote_id,
    model_dir_name,
)

__all__ = [
    "RegistryStore",
    "RegistryEntry",
    "REGISTRY_VERSION",
    "is_valid_alias",
    "is_valid_remote_id",
    "model_dir_name",
]
