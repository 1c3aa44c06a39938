"""Error types shared across embeddy."""

from .lib import (
    AliasConflictError,
    DeviceUnavailableError,
    DownloadFailedError,
    EmbeddyError,
    FetchError,
    IncompleteModelError,
    InferenceError,
    InvalidInputError,
    LoadTimeoutError,
    ModelLoadError,
    ModelNotFoundError,
    StorageCorruptError,
    UnsupportedArchitectureError,
    WeightsCorruptError,
)

__all__ = [
    "EmbeddyError",
    "ModelNotFoundError",
    "InvalidInputError",
    "AliasConflictError",
    "StorageCorruptError",
    "FetchError",
    "DownloadFailedError",
    "IncompleteModelError",
    "ModelLoadError",
    "UnsupportedArchitectureError",
    "DeviceUnavailableError",
    "WeightsCorruptError",
    "LoadTimeoutError",
    "InferenceError",
]
