"""Centralized environment configuration management for embeddy.

Provides a unified interface for all environment variables with:
- Single `get_environment()` function for all configuration
- Type-safe enum with metadata (default, type, description)
- Consistent resolution: override > environment > default

Example:
    >>> from embeddy.config import EnvVar, get_environment
    >>>
    >>> port = get_environment(EnvVar.EMBEDDY_PORT)  # Returns int
    >>> token = get_environment(EnvVar.HF_TOKEN)  # Returns str | None
    >>>
    >>> # Override at runtime
    >>> port = get_environment(EnvVar.EMBEDDY_PORT, override=9000)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, overload

# =============================================================================
# Environment Variable Configuration
# =============================================================================


@dataclass(frozen=True)
class EnvConfig:
    """Metadata for an environment variable.

    Attributes:
        name: Environment variable name (e.g., "EMBEDDY_PORT").
        default: Default value if not set in environment.
        var_type: Python type for value conversion (str, int, float, bool, Path).
        description: Human-readable description.
        category: Grouping category for documentation.
    """

    name: str
    default: Any
    var_type: type
    description: str = ""
    category: str = "general"


class EnvVar(Enum):
    """All environment variables used by embeddy.

    Each member contains an EnvConfig with name, default, type, and description.
    Use with `get_environment()` for type-safe access.

    Categories:
        - storage: Data directory paths
        - runtime: Device selection, logging, cache sizing
        - service: HTTP server host and port
        - hub: Model hub credentials
    """

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------
    EMBEDDY_DATA_DIR = EnvConfig(
        name="EMBEDDY_DATA_DIR",
        default=None,  # Computed from home directory
        var_type=Path,
        description="Base data directory (registry file and model files)",
        category="storage",
    )

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------
    EMBEDDY_LOG_LEVEL = EnvConfig(
        name="EMBEDDY_LOG_LEVEL",
        default="INFO",
        var_type=str,
        description="Log verbosity (DEBUG, INFO, WARNING, ERROR)",
        category="runtime",
    )
    EMBEDDY_DEVICE = EnvConfig(
        name="EMBEDDY_DEVICE",
        default="cpu",
        var_type=str,
        description="Default inference device ('cpu', 'cuda', 'cuda:N', 'mps')",
        category="runtime",
    )
    EMBEDDY_MAX_LOADED_MODELS = EnvConfig(
        name="EMBEDDY_MAX_LOADED_MODELS",
        default=0,
        var_type=int,
        description="Maximum models kept in memory, LRU evicted (0=unbounded)",
        category="runtime",
    )
    EMBEDDY_NORMALIZE = EnvConfig(
        name="EMBEDDY_NORMALIZE",
        default=False,
        var_type=bool,
        description="L2-normalize embedding vectors before returning them",
        category="runtime",
    )
    EMBEDDY_LOAD_TIMEOUT = EnvConfig(
        name="EMBEDDY_LOAD_TIMEOUT",
        default=0.0,
        var_type=float,
        description="Seconds a request waits on a load started by another request (0=no limit)",
        category="runtime",
    )

    # -------------------------------------------------------------------------
    # Service Configuration
    # -------------------------------------------------------------------------
    EMBEDDY_HOST = EnvConfig(
        name="EMBEDDY_HOST",
        default="0.0.0.0",
        var_type=str,
        description="HTTP server bind address",
        category="service",
    )
    EMBEDDY_PORT = EnvConfig(
        name="EMBEDDY_PORT",
        default=8080,
        var_type=int,
        description="HTTP server port",
        category="service",
    )

    # -------------------------------------------------------------------------
    # Model Hub
    # -------------------------------------------------------------------------
    HF_TOKEN = EnvConfig(
        name="HF_TOKEN",
        default=None,
        var_type=str,
        description="Hugging Face token for gated or private models",
        category="hub",
    )


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def _parse_bool(value: str) -> bool | None:
    """Parse string to boolean.

    Recognizes: true/false, 1/0, yes/no (case-insensitive).
    Returns None for unrecognized values.
    """
    normalized = value.lower().strip()
    if normalized in ("true", "1", "yes"):
        return True
    if normalized in ("false", "0", "no"):
        return False
    return None


def _convert_value(value: str | None, var_type: type, default: Any) -> Any:
    """Convert string value to target type.

    Args:
        value: Raw string value from environment (or None).
        var_type: Target Python type.
        default: Default value if conversion fails or value is None.

    Returns:
        Converted value or default.
    """
    if value is None:
        return default

    if var_type is str:
        return value

    if var_type is int:
        try:
            return int(value)
        except ValueError:
            return default

    if var_type is float:
        try:
            return float(value)
        except ValueError:
            return default

    if var_type is bool:
        result = _parse_bool(value)
        return result if result is not None else default

    if var_type is Path:
        return Path(value).expanduser()

    return value


# =============================================================================
# Main Interface
# =============================================================================


@overload
def get_environment(env_var: EnvVar, override: int) -> int: ...
@overload
def get_environment(env_var: EnvVar, override: str) -> str: ...
@overload
def get_environment(env_var: EnvVar, override: bool) -> bool: ...
@overload
def get_environment(env_var: EnvVar, override: Path) -> Path: ...
@overload
def get_environment(env_var: EnvVar, override: None = None) -> Any: ...


def get_environment(env_var: EnvVar, override: Any = None) -> Any:
    """Get environment variable value with type conversion.

    Resolution priority:
        1. Explicit override parameter (highest)
        2. Environment variable value
        3. Default from EnvConfig (lowest)

    Args:
        env_var: Environment variable enum member.
        override: Optional override value (bypasses env lookup).

    Returns:
        Value converted to the appropriate type (str, int, bool, or Path).

    Example:
        >>> get_environment(EnvVar.EMBEDDY_PORT)
        8080
        >>> get_environment(EnvVar.EMBEDDY_PORT, override=9000)
        9000
    """
    config: EnvConfig = env_var.value

    if override is not None:
        return override

    raw_value = os.environ.get(config.name)
    return _convert_value(raw_value, config.var_type, config.default)


def get_environment_info(env_var: EnvVar) -> EnvConfig:
    """Get metadata for an environment variable."""
    return env_var.value


# =============================================================================
# Convenience Functions
# =============================================================================


def get_data_dir(override: Path | str | None = None) -> Path:
    """Get the base data directory.

    Resolution: override > EMBEDDY_DATA_DIR > ~/.embeddy
    """
    if override is not None:
        return Path(override)

    env_path = get_environment(EnvVar.EMBEDDY_DATA_DIR)
    if env_path:
        return env_path

    return Path.home() / ".embeddy"


def get_models_dir(override: Path | str | None = None) -> Path:
    """Get the directory holding per-model subdirectories."""
    return get_data_dir(override) / "models"


def get_registry_path(override: Path | str | None = None) -> Path:
    """Get the path of the persisted alias registry."""
    return get_data_dir(override) / "registry.json"


def ensure_data_dirs(override: Path | str | None = None) -> Path:
    """Create the data and models directories if missing.

    Returns:
        The resolved data directory.
    """
    data_dir = get_data_dir(override)
    data_dir.mkdir(parents=True, exist_ok=True)
    get_models_dir(data_dir).mkdir(parents=True, exist_ok=True)
    return data_dir


def get_max_loaded_models() -> int | None:
    """Get the cache capacity, or None when unbounded."""
    value = get_environment(EnvVar.EMBEDDY_MAX_LOADED_MODELS)
    return value if value and value > 0 else None


def get_load_timeout() -> float | None:
    """Get the load wait timeout in seconds, or None to wait indefinitely."""
    value = get_environment(EnvVar.EMBEDDY_LOAD_TIMEOUT)
    return value if value and value > 0 else None


def list_environment_variables(category: str | None = None) -> list[EnvVar]:
    """List all environment variables, optionally filtered by category.

    Args:
        category: Filter by category (storage, runtime, service, hub).
                 None returns all variables.

    Returns:
        List of EnvVar enum members.
    """
    if category is None:
        return list(EnvVar)

    return [var for var in EnvVar if var.value.category == category]


__all__ = [
    # Core types
    "EnvConfig",
    "EnvVar",
    # Main interface
    "get_environment",
    "get_environment_info",
    # Convenience functions
    "get_data_dir",
    "get_models_dir",
    "get_registry_path",
    "ensure_data_dirs",
    "get_max_loaded_models",
    "get_load_timeout",
    # Introspection
    "list_environment_variables",
]
