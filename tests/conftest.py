"""
Shared test fixtures and configuration for pytest.
"""

import hashlib
import logging
import math
import re
import sys
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from knowledge.config.config_loader import ConnectionMode, KnowledgeConfig
from knowledge.core.exceptions import KnowledgeBackendError
from knowledge.ingest.pipeline import PipelineConfig
from knowledge.providers.base import EmbeddingBackend
from knowledge.providers.handle import EmbeddingHandle
from knowledge.store import KnowledgeStore
from knowledge.vector.store import VectorStore


logger = logging.getLogger(__name__)


FAKE_DIMENSION = 256

_TOKEN_RE = re.compile(r"\w+")


# ============================================================================
# Fake embedding backend
# ============================================================================

class FakeEmbeddingBackend(EmbeddingBackend):
    """
    Deterministic bag-of-words backend.

    Each lowercase token is hashed into one of ``dimension`` buckets and the
    counts are L2-normalised, so texts sharing words land close together.

    Attributes:
        fail_markers: Texts containing any of these raise KnowledgeBackendError
        delay: Seconds to sleep per call
        gate: If set, every call waits on this event first
        calls: Number of compute calls made
        max_concurrent: Highest number of calls seen in flight at once
    """

    name = "fake"

    def __init__(
        self,
        dimension: int = FAKE_DIMENSION,
        max_input_bytes: int = 32000,
        fail_markers: Iterable[str] = (),
        delay: float = 0.0,
        gate: Optional[threading.Event] = None,
    ):
        self._dimension = dimension
        self._max_input_bytes = max_input_bytes
        self.fail_markers = list(fail_markers)
        self.delay = delay
        self.gate = gate
        self.calls = 0
        self.inputs: List[str] = []
        self.in_flight = 0
        self.max_concurrent = 0
        self._lock = threading.Lock()

    @property
    def max_input_bytes(self) -> int:
        return self._max_input_bytes

    def dimension(self) -> int:
        return self._dimension

    def _embed(self, text: str) -> List[float]:
        with self._lock:
            self.calls += 1
            self.inputs.append(text)
            self.in_flight += 1
            self.max_concurrent = max(self.max_concurrent, self.in_flight)
        try:
            if self.gate is not None:
                self.gate.wait(timeout=10)
            if self.delay:
                time.sleep(self.delay)
            for marker in self.fail_markers:
                if marker in text:
                    raise KnowledgeBackendError(f"fake failure for {marker!r}", backend=self.name)
            return bag_of_words(text, self._dimension)
        finally:
            with self._lock:
                self.in_flight -= 1


def bag_of_words(text: str, dimension: int = FAKE_DIMENSION) -> List[float]:
    """Hash tokens into a normalised count vector."""
    vector = [0.0] * dimension
    for token in _TOKEN_RE.findall(text.lower()):
        bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    norm = math.sqrt(sum(x * x for x in vector))
    if norm == 0:
        return vector
    return [x / norm for x in vector]


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (real SQLite files, threads)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_backend() -> FakeEmbeddingBackend:
    """Fresh fake backend."""
    return FakeEmbeddingBackend()


@pytest.fixture
def handle(fake_backend) -> EmbeddingHandle:
    """Embedding handle over the fake backend."""
    return EmbeddingHandle(fake_backend)


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def knowledge_config(data_dir, monkeypatch) -> KnowledgeConfig:
    """Config pointing at the temporary data directory, isolated from the environment."""
    for name in (
        "BUDDY_EMBEDDING_MODEL",
        "BUDDY_KNOWLEDGE_DIR",
        "BUDDY_CONNECTION_MODE",
        "BUDDY_KNOWLEDGE_WORKERS",
        "OLLAMA_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    return KnowledgeConfig(data_dir=data_dir, workers=4, channel_capacity=4)


@pytest.fixture(params=[ConnectionMode.PERSISTENT, ConnectionMode.ON_DEMAND], ids=["persistent", "on_demand"])
def connection_mode(request) -> ConnectionMode:
    """Both connection modes."""
    return request.param


@pytest.fixture
def vector_store(data_dir, connection_mode):
    """Vector store at the fake backend's dimension, in each connection mode."""
    store = VectorStore.for_data_dir(data_dir, FAKE_DIMENSION, connection_mode)
    yield store
    store.close()


@pytest.fixture
def knowledge_store(handle, data_dir):
    """KnowledgeStore facade over the fake backend and a persistent vector store."""
    store = KnowledgeStore(
        handle,
        VectorStore.for_data_dir(data_dir, FAKE_DIMENSION, ConnectionMode.PERSISTENT),
        PipelineConfig(workers=4, channel_capacity=4),
    )
    yield store
    store.close()
