"""Centralized configuration management for embeddy.

Provides unified access to all configuration via the `get_environment()` function.

Example:
    >>> from embeddy.config import EnvVar, get_environment
    >>>
    >>> device = get_environment(EnvVar.EMBEDDY_DEVICE)  # Returns str: "cpu"
    >>> port = get_environment(EnvVar.EMBEDDY_PORT, override=9000)
    >>>
    >>> for var in list_environment_variables("service"):
    ...     info = get_environment_info(var)
    ...     print(f"{info.name}: {info.description}")

Environment Variable Categories:
    storage: Data directory paths
    runtime: Device, logging, cache capacity, normalization
    service: HTTP server host and port
    hub: Model hub credentials
"""

from .lib import (
    # Core types
    EnvConfig,
    EnvVar,
    # Main interface
    ensure_data_dirs,
    get_data_dir,
    get_environment,
    get_environment_info,
    get_load_timeout,
    get_max_loaded_models,
    get_models_dir,
    get_registry_path,
    # Introspection
    list_environment_variables,
)

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
