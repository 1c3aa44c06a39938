"""HTTP and MCP server for embeddy.

Exposes embedding, health, and model listing over a JSON HTTP API and as
MCP tools, backed by one shared Coordinator.

Example:
    # Start server in HTTP mode
    >>> from embeddy.server import ServerConfig, run_server
    >>> run_server(ServerConfig.from_env(port=8080))

    # Create server for testing
    >>> from embeddy.server import create_server
    >>> app = create_server(coordinator).http_app()

HTTP Routes:
    - GET /api/health: Status, loaded models, default device
    - POST /api/embed: Embed a batch of texts
    - GET /api/models: Registered models

Available Tools:
    - embed: Embed texts with a registered model
    - list_models: Registered models
    - health: Service status
"""

from .lib import (
    EmbedRequest,
    EmbedResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    ServerConfig,
    TransportType,
    error_response,
    get_server_version,
)
from .server import create_server, run_server

__all__ = [
    # Server
    "create_server",
    "run_server",
    # Configuration
    "ServerConfig",
    "TransportType",
    # Schemas
    "EmbedRequest",
    "EmbedResponse",
    "HealthResponse",
    "ModelInfo",
    "ModelsResponse",
    # Utilities
    "error_response",
    "get_server_version",
]
