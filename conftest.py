"""Root pytest configuration and fixtures.

This module provides:
- Environment setup (loads .env)
- Fake fetcher and engine implementations for offline testing
- Registry, cache, and coordinator fixtures wired to the fakes
- Global test configuration
"""

from __future__ import annotations

import hashlib
import importlib.util
import json
import threading
import time
from collections import Counter
from pathlib import Path

import numpy as np
import pytest
from dotenv import load_dotenv

from embeddy.coordinator import Coordinator
from embeddy.engine import EngineHandle, InferenceEngine
from embeddy.engine.local import config_dimension, read_model_config
from embeddy.hub import ModelFetcher
from embeddy.registry import RegistryStore

# Load environment variables from .env file
load_dotenv()


# =============================================================================
# Configuration Constants
# =============================================================================

MINILM = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSION = 384
KNOWN_DIMENSIONS = {
    MINILM: 384,
    "BAAI/bge-base-en-v1.5": 768,
    "intfloat/e5-small-v2": 384,
}


# =============================================================================
# Fakes
# =============================================================================


class FakeFetcher(ModelFetcher):
    """Fetcher that writes a minimal model directory instead of downloading.

    Attributes:
        calls: ensure_local() invocations per remote id.
        downloads: Directories actually written per remote id.
        delay: Seconds to sleep inside ensure_local().
        fail_with: Exception raised by ensure_local() when set.
    """

    def __init__(self, models_dir: Path, delay: float = 0.0):
        super().__init__(models_dir)
        self.delay = delay
        self.fail_with: Exception | None = None
        self.calls: Counter[str] = Counter()
        self.downloads: Counter[str] = Counter()
        self._lock = threading.Lock()

    def ensure_local(self, remote_id: str) -> Path:
        with self._lock:
            self.calls[remote_id] += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

        model_path = self.local_path(remote_id)
        if self.is_complete(model_path):
            return model_path

        model_path.mkdir(parents=True, exist_ok=True)
        config = {
            "model_type": "bert",
            "hidden_size": KNOWN_DIMENSIONS.get(remote_id, DEFAULT_DIMENSION),
        }
        (model_path / "config.json").write_text(json.dumps(config))
        (model_path / "tokenizer.json").write_text("{}")
        (model_path / "model.safetensors").write_bytes(b"")
        with self._lock:
            self.downloads[remote_id] += 1
        return model_path


class FakeEngine(InferenceEngine):
    """Engine producing deterministic hash-seeded vectors.

    Attributes:
        loads: load() invocations per model directory name.
        load_delay: Seconds to sleep inside load().
        embed_delay: Seconds to sleep inside embed().
        fail_with: Exception raised by load() when set.
        max_concurrent_embeds: Highest number of overlapping embed() calls.
    """

    def __init__(
        self,
        load_delay: float = 0.0,
        embed_delay: float = 0.0,
        reentrant: bool = True,
    ):
        self.load_delay = load_delay
        self.embed_delay = embed_delay
        self.reentrant = reentrant
        self.fail_with: Exception | None = None
        self.loads: Counter[str] = Counter()
        self.max_concurrent_embeds = 0
        self._active_embeds = 0
        self._lock = threading.Lock()

    def load(self, local_path: Path, device: str) -> EngineHandle:
        with self._lock:
            self.loads[Path(local_path).name] += 1
        if self.load_delay:
            time.sleep(self.load_delay)
        if self.fail_with is not None:
            raise self.fail_with

        config = read_model_config(local_path)
        return EngineHandle(
            model=Path(local_path).name,
            dimension=config_dimension(config) or DEFAULT_DIMENSION,
            device=device,
        )

    def embed(self, handle: EngineHandle, texts: list[str]) -> np.ndarray:
        with self._lock:
            self._active_embeds += 1
            self.max_concurrent_embeds = max(
                self.max_concurrent_embeds, self._active_embeds
            )
        try:
            if self.embed_delay:
                time.sleep(self.embed_delay)
            return np.stack([self.vector(text, handle.dimension) for text in texts])
        finally:
            with self._lock:
                self._active_embeds -= 1

    @staticmethod
    def vector(text: str, dimension: int) -> np.ndarray:
        """The vector this engine produces for `text`."""
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        return rng.standard_normal(dimension).astype(np.float32)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty embeddy data directory."""
    path = tmp_path / "embeddy-data"
    path.mkdir()
    return path


@pytest.fixture
def embeddy_env(data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point EMBEDDY_* configuration at the temporary data directory."""
    monkeypatch.setenv("EMBEDDY_DATA_DIR", str(data_dir))
    monkeypatch.setenv("EMBEDDY_DEVICE", "cpu")
    monkeypatch.delenv("EMBEDDY_MAX_LOADED_MODELS", raising=False)
    monkeypatch.delenv("EMBEDDY_LOAD_TIMEOUT", raising=False)
    monkeypatch.delenv("HF_TOKEN", raising=False)
    return data_dir


@pytest.fixture
def registry_store(data_dir: Path) -> RegistryStore:
    return RegistryStore(data_dir / "registry.json", data_dir / "models")


@pytest.fixture
def fake_fetcher(data_dir: Path) -> FakeFetcher:
    return FakeFetcher(data_dir / "models")


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def coordinator(
    registry_store: RegistryStore,
    fake_fetcher: FakeFetcher,
    fake_engine: FakeEngine,
) -> Coordinator:
    """Coordinator wired to the fakes, with an unbounded cache."""
    return Coordinator(registry_store, fake_fetcher, fake_engine)


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]):
    """Skip integration tests when sentence-transformers is not installed."""
    if importlib.util.find_spec("sentence_transformers") is None:
        skip_integration = pytest.mark.skip(reason="sentence-transformers not installed")
        for item in items:
            if item.get_closest_marker("integration") is not None:
                item.add_marker(skip_integration)
