"""Unit tests for the server module.

Tests cover:
- Server configuration
- HTTP API routes and error mapping
- Tool registration and MCP protocol calls
"""

import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from starlette.testclient import TestClient

from embeddy.coordinator import Coordinator
from embeddy.core.errors import (
    DownloadFailedError,
    InferenceError,
    InvalidInputError,
    LoadTimeoutError,
    StorageCorruptError,
)

from .lib import (
    EmbedRequest,
    ServerConfig,
    TransportType,
    error_response,
    get_server_version,
)
from .server import create_server

# =============================================================================
# Configuration Tests
# =============================================================================


class TestServerConfig:
    """Tests for ServerConfig dataclass."""

    @pytest.mark.unit
    def test_default_config(self):
        config = ServerConfig()

        assert config.name == "embeddy"
        assert config.transport == TransportType.HTTP
        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.path == "/mcp"

    @pytest.mark.unit
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("EMBEDDY_HOST", "127.0.0.1")
        monkeypatch.setenv("EMBEDDY_PORT", "9001")

        config = ServerConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 9001
        assert config.url == "http://127.0.0.1:9001"

    @pytest.mark.unit
    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv("EMBEDDY_PORT", "9001")

        config = ServerConfig.from_env(transport=TransportType.SSE, port=7000)

        assert config.transport == TransportType.SSE
        assert config.port == 7000

    @pytest.mark.unit
    def test_transport_from_string(self):
        assert TransportType("http") == TransportType.HTTP
        assert TransportType("stdio") == TransportType.STDIO

    @pytest.mark.unit
    def test_get_server_version(self):
        assert len(get_server_version().split(".")) >= 2


class TestSchemas:
    """Tests for request parsing and error responses."""

    @pytest.mark.unit
    def test_single_string_input_is_wrapped(self):
        request = EmbedRequest.model_validate({"model": "m", "input": "hello"})
        assert request.input == ["hello"]

    @pytest.mark.unit
    def test_empty_input_rejected(self):
        with pytest.raises(ValueError):
            EmbedRequest.model_validate({"model": "m", "input": []})

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error, status",
        [
            (InvalidInputError("bad"), 400),
            (DownloadFailedError("offline"), 500),
            (InferenceError("nan"), 500),
            (StorageCorruptError("broken"), 500),
            (LoadTimeoutError("slow"), 503),
        ],
    )
    def test_error_response_status(self, error, status):
        response = error_response(error)

        assert response.status_code == status
        assert response.body == f'{{"error":"{error}"}}'.encode()


# =============================================================================
# HTTP API Tests
# =============================================================================


class TestHealthRoute:
    """Tests for GET /api/health."""

    @pytest.mark.unit
    def test_health_before_any_load(self, http_client):
        response = http_client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "loaded_models": [], "device": "cpu"}

    @pytest.mark.unit
    def test_health_lists_loaded_model(self, http_client):
        http_client.post("/api/embed", json={"model": "minilm", "input": ["x"]})

        assert http_client.get("/api/health").json()["loaded_models"] == ["minilm"]


class TestEmbedRoute:
    """Tests for POST /api/embed."""

    @pytest.mark.unit
    def test_embed(self, http_client, fake_engine):
        response = http_client.post(
            "/api/embed", json={"model": "minilm", "input": ["Hello, world!"]}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["model"] == "minilm"
        assert body["dimension"] == 384
        assert len(body["embeddings"]) == 1
        np.testing.assert_allclose(
            body["embeddings"][0], fake_engine.vector("Hello, world!", 384), rtol=1e-6
        )

    @pytest.mark.unit
    def test_embed_single_string(self, http_client):
        response = http_client.post("/api/embed", json={"model": "minilm", "input": "hi"})

        assert response.status_code == 200
        assert len(response.json()["embeddings"]) == 1

    @pytest.mark.unit
    def test_embed_preserves_order(self, http_client, fake_engine):
        texts = ["alpha", "beta", "gamma"]

        body = http_client.post(
            "/api/embed", json={"model": "minilm", "input": texts}
        ).json()

        for text, row in zip(texts, body["embeddings"]):
            np.testing.assert_allclose(row, fake_engine.vector(text, 384), rtol=1e-6)

    @pytest.mark.unit
    def test_unknown_model_is_404(self, http_client):
        response = http_client.post("/api/embed", json={"model": "nope", "input": ["x"]})

        assert response.status_code == 404
        assert response.json() == {"error": "Model not found: nope"}

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "payload",
        [
            {"model": "minilm", "input": []},
            {"model": "minilm"},
            {"input": ["x"]},
            {"model": "minilm", "input": [1, 2]},
            {"model": "minilm", "input": ["x"], "device": "tpu"},
        ],
    )
    def test_invalid_body_is_400(self, http_client, payload):
        response = http_client.post("/api/embed", json=payload)

        assert response.status_code == 400
        assert "error" in response.json()

    @pytest.mark.unit
    def test_non_json_body_is_400(self, http_client):
        response = http_client.post(
            "/api/embed",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be JSON"}

    @pytest.mark.unit
    def test_load_failure_is_500(self, http_client, fake_engine):
        fake_engine.fail_with = InferenceError("weights exploded")

        response = http_client.post("/api/embed", json={"model": "minilm", "input": ["x"]})

        assert response.status_code == 500
        assert response.json() == {"error": "weights exploded"}

    @pytest.mark.unit
    def test_load_timeout_is_503(self, registry_store, fake_fetcher, fake_engine):
        coordinator = Coordinator(
            registry_store, fake_fetcher, fake_engine, load_timeout=0.1
        )
        coordinator.pull("sentence-transformers/all-MiniLM-L6-v2", alias="minilm")
        client = TestClient(create_server(coordinator).http_app())
        fake_engine.load_delay = 1.0

        with ThreadPoolExecutor(max_workers=1) as pool:
            leader = pool.submit(coordinator.embed, "minilm", ["x"])
            time.sleep(0.2)
            response = client.post("/api/embed", json={"model": "minilm", "input": ["x"]})
            leader.result(5)

        assert response.status_code == 503
        assert "Timed out" in response.json()["error"]


class TestModelsRoute:
    """Tests for GET /api/models."""

    @pytest.mark.unit
    def test_lists_registered(self, http_client):
        body = http_client.get("/api/models").json()

        assert [m["alias"] for m in body["models"]] == ["minilm"]
        assert body["models"][0]["remote_id"] == "sentence-transformers/all-MiniLM-L6-v2"


# =============================================================================
# MCP Protocol Tests
# =============================================================================


@pytest.mark.mcp
class TestMCPProtocol:
    """Protocol tests using the in-memory MCP client."""

    @pytest.mark.asyncio
    async def test_client_can_list_tools(self, mcp_client):
        tools = await mcp_client.list_tools()

        assert {t.name for t in tools} == {"embed", "list_models", "health"}

    @pytest.mark.asyncio
    async def test_embed_tool(self, mcp_client):
        result = await mcp_client.call_tool(
            "embed", {"model": "minilm", "texts": ["Hello, world!", "Bye"]}
        )

        assert result.data["dimension"] == 384
        assert len(result.data["embeddings"]) == 2

    @pytest.mark.asyncio
    async def test_embed_tool_unknown_model(self, mcp_client):
        with pytest.raises(Exception, match="not found"):
            await mcp_client.call_tool("embed", {"model": "ghost", "texts": ["x"]})

    @pytest.mark.asyncio
    async def test_list_models_tool(self, mcp_client):
        result = await mcp_client.call_tool("list_models", {})

        assert [m["alias"] for m in result.data["models"]] == ["minilm"]

    @pytest.mark.asyncio
    async def test_health_tool(self, mcp_client):
        result = await mcp_client.call_tool("health", {})

        assert result.data["status"] == "ok"
        assert result.data["version"] == get_server_version()
