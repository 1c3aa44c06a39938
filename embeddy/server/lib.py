"""Configuration and wire schemas for the embeddy server.

Provides transport selection, server configuration, the JSON request and
response models of the HTTP API, and the mapping from embeddy errors to
HTTP error responses.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field, ValidationError, field_validator
from starlette.responses import JSONResponse

from embeddy.config import EnvVar, get_environment
from embeddy.core.errors import EmbeddyError
from embeddy.registry import RegistryEntry

logger = logging.getLogger(__name__)


class TransportType(str, Enum):
    """Supported server transport types."""

    HTTP = "http"
    SSE = "sse"
    STDIO = "stdio"


@dataclass
class ServerConfig:
    """Configuration for the embeddy server.

    Attributes:
        name: Server display name.
        transport: Transport type for communication.
        host: Bind address for HTTP/SSE transports.
        port: Port for HTTP/SSE transports.
        path: URL path of the MCP endpoint for HTTP transport.
    """

    name: str = "embeddy"
    transport: TransportType = TransportType.HTTP
    host: str = "0.0.0.0"
    port: int = 8080
    path: str = "/mcp"

    @classmethod
    def from_env(
        cls,
        transport: TransportType | None = None,
        host: str | None = None,
        port: int | None = None,
    ) -> "ServerConfig":
        """Create config from environment variables.

        Args:
            transport: Override transport type (default: HTTP).
            host: Override EMBEDDY_HOST.
            port: Override EMBEDDY_PORT.

        Returns:
            ServerConfig with values from environment.
        """
        return cls(
            transport=transport or TransportType.HTTP,
            host=get_environment(EnvVar.EMBEDDY_HOST, override=host),
            port=get_environment(EnvVar.EMBEDDY_PORT, override=port),
        )

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


def get_server_version() -> str:
    """Get server version string."""
    return "0.1.0"


# =============================================================================
# Wire Schemas
# =============================================================================


class EmbedRequest(BaseModel):
    """Body of POST /api/embed.

    `input` accepts a single string or a list of strings.
    """

    model: str = Field(min_length=1)
    input: list[str] = Field(min_length=1)
    device: str | None = None

    @field_validator("input", mode="before")
    @classmethod
    def _wrap_single_text(cls, value):
        return [value] if isinstance(value, str) else value


class EmbedResponse(BaseModel):
    """Body returned by POST /api/embed."""

    model: str
    dimension: int
    embeddings: list[list[float]]


class HealthResponse(BaseModel):
    """Body returned by GET /api/health."""

    status: str
    loaded_models: list[str]
    device: str


class ModelInfo(BaseModel):
    """One registered model as listed by GET /api/models."""

    alias: str
    remote_id: str
    local_path: str
    downloaded_at: str

    @classmethod
    def from_entry(cls, entry: RegistryEntry) -> "ModelInfo":
        return cls(alias=entry.alias, **entry.to_dict())


class ModelsResponse(BaseModel):
    """Body returned by GET /api/models."""

    models: list[ModelInfo]


# =============================================================================
# Error Mapping
# =============================================================================


def describe_validation_error(error: ValidationError) -> str:
    """Condense a pydantic ValidationError to one line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "body"
        parts.append(f"{location}: {item['msg']}")
    return "Invalid request: " + "; ".join(parts)


def error_response(error: EmbeddyError) -> JSONResponse:
    """Build the JSON error response for an embeddy error."""
    status = error.status_code
    if status >= 500:
        logger.error(f"Request failed ({status}): {error}")
    else:
        logger.warning(f"Request rejected ({status}): {error}")
    return JSONResponse({"error": str(error)}, status_code=status)


__all__ = [
    "TransportType",
    "ServerConfig",
    "get_server_version",
    "EmbedRequest",
    "EmbedResponse",
    "HealthResponse",
    "ModelInfo",
    "ModelsResponse",
    "describe_validation_error",
    "error_response",
]
