"""FastMCP server for embeddy.

Serves a small JSON HTTP API next to the MCP endpoint:

    GET  /api/health   service status and resident models
    POST /api/embed    {"model": ..., "input": [...]} -> embeddings
    GET  /api/models   registered models

The same operations are exposed as MCP tools (embed, list_models, health).
Coordinator calls block on downloads, loads, and inference, so every one of
them runs in a worker thread to keep the event loop responsive.

Usage:
    # HTTP mode (default)
    python . serve --port 8080

    # STDIO mode (MCP clients only, no HTTP API)
    python . serve --transport stdio
"""

import asyncio
import logging
from typing import Any

from fastmcp import FastMCP
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from embeddy.coordinator import Coordinator, create_coordinator
from embeddy.core.errors import EmbeddyError, InvalidInputError

from .lib import (
    EmbedRequest,
    EmbedResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    ServerConfig,
    TransportType,
    describe_validation_error,
    error_response,
    get_server_version,
)

logger = logging.getLogger(__name__)


SERVER_INSTRUCTIONS = """\
## embeddy

Serves text embeddings from locally stored encoder models.

- `list_models()` → registered aliases and their hub ids
- `embed(model, texts)` → one vector per text, in input order
- `health()` → loaded models and default device

Models are pulled ahead of time with `python . pull <hub-id> --alias <name>`.
The first embed call for a model loads it; later calls reuse it.
"""


# =============================================================================
# Server Factory
# =============================================================================


def create_server(coordinator: Coordinator | None = None) -> FastMCP:
    """Create and configure the server instance.

    Args:
        coordinator: Shared coordinator; built from the environment if None.

    Returns:
        Configured FastMCP server instance.
    """
    coordinator = coordinator or create_coordinator()
    mcp = FastMCP(name="embeddy", instructions=SERVER_INSTRUCTIONS)

    # -------------------------------------------------------------------------
    # HTTP API
    # -------------------------------------------------------------------------

    @mcp.custom_route("/api/health", methods=["GET"])
    async def health_route(request: Request) -> JSONResponse:
        body = HealthResponse(**coordinator.health())
        return JSONResponse(body.model_dump())

    @mcp.custom_route("/api/embed", methods=["POST"])
    async def embed_route(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return error_response(InvalidInputError("Request body must be JSON"))

        try:
            body = EmbedRequest.model_validate(payload)
        except ValidationError as e:
            return error_response(InvalidInputError(describe_validation_error(e)))

        try:
            result = await asyncio.to_thread(
                coordinator.embed, body.model, body.input, body.device
            )
        except EmbeddyError as e:
            return error_response(e)

        response = EmbedResponse.model_validate(result.to_dict())
        return JSONResponse(response.model_dump())

    @mcp.custom_route("/api/models", methods=["GET"])
    async def models_route(request: Request) -> JSONResponse:
        try:
            entries = await asyncio.to_thread(coordinator.list_registered)
        except EmbeddyError as e:
            return error_response(e)
        body = ModelsResponse(models=[ModelInfo.from_entry(e) for e in entries])
        return JSONResponse(body.model_dump())

    # -------------------------------------------------------------------------
    # MCP Tools
    # -------------------------------------------------------------------------

    @mcp.tool
    async def embed(
        model: str,
        texts: list[str],
        device: str | None = None,
    ) -> dict[str, Any]:
        """Embed texts with a registered model.

        Args:
            model: Alias or hub id, e.g. "minilm".
            texts: Texts to embed (at least one).
            device: Device override ("cpu", "cuda:0", "mps").

        Returns:
            Dictionary with:
            - model: The requested model name
            - dimension: Vector length
            - embeddings: One vector per text, in input order
        """
        result = await asyncio.to_thread(coordinator.embed, model, texts, device)
        return result.to_dict()

    @mcp.tool
    async def list_models() -> dict[str, Any]:
        """List registered models.

        Returns:
            Dictionary with `models`: alias, remote_id, local_path and
            downloaded_at for each registered model.
        """
        entries = await asyncio.to_thread(coordinator.list_registered)
        return ModelsResponse(
            models=[ModelInfo.from_entry(e) for e in entries]
        ).model_dump()

    @mcp.tool
    def health() -> dict[str, Any]:
        """Report service status, resident models, and the default device."""
        return {**coordinator.health(), "version": get_server_version()}

    return mcp


# =============================================================================
# Runner
# =============================================================================


def run_server(
    config: ServerConfig | None = None,
    coordinator: Coordinator | None = None,
) -> None:
    """Run the server with the configured transport.

    Args:
        config: Server configuration (from environment if None).
        coordinator: Shared coordinator (from environment if None).
    """
    config = config or ServerConfig.from_env()
    coordinator = coordinator or create_coordinator()
    mcp = create_server(coordinator)

    logger.info(f"Starting embeddy server v{get_server_version()}")
    logger.info(f"Transport: {config.transport.value}, device: {coordinator.device}")
    registered = coordinator.list_registered()
    logger.info(f"Registered models: {', '.join(e.alias for e in registered) or 'none'}")

    if config.transport == TransportType.STDIO:
        logger.info("Running in STDIO mode")
        mcp.run()
    elif config.transport == TransportType.HTTP:
        logger.info(f"Running in HTTP mode at {config.url} (MCP at {config.path})")
        mcp.run(
            transport="http",
            host=config.host,
            port=config.port,
            path=config.path,
        )
    elif config.transport == TransportType.SSE:
        logger.info(f"Running in SSE mode at {config.url}")
        mcp.run(
            transport="sse",
            host=config.host,
            port=config.port,
        )
    else:
        raise ValueError(f"Unknown transport: {config.transport}")


__all__ = ["SERVER_INSTRUCTIONS", "create_server", "run_server"]
