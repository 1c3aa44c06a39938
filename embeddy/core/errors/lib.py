"""Exception hierarchy for embeddy.

Every error raised by the registry, fetcher, engine, cache, or coordinator
derives from EmbeddyError. Each class carries the HTTP status the server
reports for it, so adapters map errors without inspecting messages.
"""


class EmbeddyError(Exception):
    """Base exception for embeddy errors.

    Attributes:
        status_code: HTTP status the server adapter responds with.
    """

    status_code: int = 500


class ModelNotFoundError(EmbeddyError):
    """Raised when a name matches no alias, registered remote id, or download."""

    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"Model not found: {name}")
        self.name = name


class InvalidInputError(EmbeddyError):
    """Raised for malformed requests (empty input, unknown device string)."""

    status_code = 400


class AliasConflictError(EmbeddyError):
    """Raised when an alias is already bound to a different remote id."""

    status_code = 409

    def __init__(self, alias: str, existing: str, requested: str):
        super().__init__(
            f"Alias '{alias}' already points to '{existing}', "
            f"refusing to rebind it to '{requested}'"
        )
        self.alias = alias
        self.existing = existing
        self.requested = requested


class StorageCorruptError(EmbeddyError):
    """Raised when the persisted registry cannot be parsed."""


# Fetch errors


class FetchError(EmbeddyError):
    """Base class for model download failures."""


class DownloadFailedError(FetchError):
    """Raised on network or hub errors while downloading a model."""


class IncompleteModelError(FetchError):
    """Raised when required files are still missing after a download.

    Attributes:
        missing: Names of the missing files.
    """

    def __init__(self, remote_id: str, missing: list[str]):
        super().__init__(
            f"Model '{remote_id}' is incomplete, missing: {', '.join(missing)}"
        )
        self.remote_id = remote_id
        self.missing = missing


# Load errors


class ModelLoadError(EmbeddyError):
    """Base class for failures turning model files into a loaded model."""


class UnsupportedArchitectureError(ModelLoadError):
    """Raised when the model's declared type is not a supported encoder."""


class DeviceUnavailableError(ModelLoadError):
    """Raised when the requested device cannot be initialized."""


class WeightsCorruptError(ModelLoadError):
    """Raised when config, tokenizer, or weight files fail to parse."""


class LoadTimeoutError(ModelLoadError):
    """Raised when a request gives up waiting on another request's load."""

    status_code = 503


class InferenceError(EmbeddyError):
    """Raised when the engine fails while computing embeddings."""


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
