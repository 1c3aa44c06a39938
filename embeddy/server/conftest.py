"""Pytest fixtures for server tests.

This module provides:
- Server instance wired to the fake coordinator
- Starlette test client for the HTTP API
- Connected MCP client for protocol tests
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncGenerator

import pytest
from starlette.testclient import TestClient

if TYPE_CHECKING:
    from fastmcp import Client, FastMCP

    from embeddy.coordinator import Coordinator


MINILM = "sentence-transformers/all-MiniLM-L6-v2"


@pytest.fixture
def pulled(coordinator: Coordinator) -> Coordinator:
    """Coordinator with all-MiniLM-L6-v2 registered as 'minilm'."""
    coordinator.pull(MINILM, alias="minilm")
    return coordinator


@pytest.fixture
def server(pulled: Coordinator) -> FastMCP:
    """Server instance backed by the fake coordinator."""
    from .server import create_server

    return create_server(pulled)


@pytest.fixture
def http_client(server: FastMCP) -> TestClient:
    """Client for the HTTP API routes."""
    return TestClient(server.http_app())


@pytest.fixture
async def mcp_client(server: FastMCP) -> AsyncGenerator[Client, None]:
    """Create connected MCP client for testing.

    Yields:
        Connected Client instance using the in-memory transport.
    """
    from fastmcp import Client

    async with Client(server) as client:
        yield client
