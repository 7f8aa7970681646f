"""Shared pytest fixtures for uploadgate tests.

A single FastAPI app is created per test session to avoid duplicate
Prometheus metric registration errors (the instrumentator registers
collectors in the global prometheus_client registry).

Each test gets a fresh memory store, session registry and orchestrator
swapped onto ``app.state``, so upload sessions never leak between tests.
The lifespan hook does not run under ASGITransport, which is fine: the
memory store needs no initialization.
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from uploadgate.config import (
    ObservabilityConfig,
    ServerConfig,
    StorageConfig,
    UploadGateConfig,
    UploadsConfig,
)
from uploadgate.server import create_app
from uploadgate.storage.backend import StoreError
from uploadgate.storage.memory import MemoryMultipartStore
from uploadgate.uploads.orchestrator import UploadOrchestrator
from uploadgate.uploads.registry import SessionRegistry


@pytest.fixture(scope="session")
def config() -> UploadGateConfig:
    """Create a test UploadGateConfig backed by the memory store."""
    return UploadGateConfig(
        server=ServerConfig(host="127.0.0.1", port=8090),
        storage=StorageConfig(backend="memory"),
        uploads=UploadsConfig(store_timeout_seconds=5),
        observability=ObservabilityConfig(metrics=True),
    )


@pytest.fixture(scope="session")
def app(config: UploadGateConfig):
    """Create a single test FastAPI application for the whole session."""
    return create_app(config)


class RecordingStore(MemoryMultipartStore):
    """Memory store that records calls and can be told to fail.

    Attributes:
        calls: ``(operation, args)`` tuples in call order.
        fail: Operation names that raise StoreError.
        delay: Seconds ``upload_part`` and ``complete`` sleep before running.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, tuple]] = []
        self.fail: set[str] = set()
        self.delay = 0.0

    def _enter(self, operation: str, *args) -> None:
        self.calls.append((operation, args))
        if operation in self.fail:
            raise StoreError(f"injected {operation} failure")

    def completed_parts(self) -> list[list]:
        """The ``parts`` argument of every complete call."""
        return [args[2] for op, args in self.calls if op == "complete"]

    async def initiate(self, key):
        self._enter("initiate", key)
        return await super().initiate(key)

    async def upload_part(self, key, upload_id, part_number, stream, content_length):
        self._enter("upload_part", key, upload_id, part_number)
        if self.delay:
            await asyncio.sleep(self.delay)
        return await super().upload_part(key, upload_id, part_number, stream, content_length)

    async def complete(self, key, upload_id, parts):
        self._enter("complete", key, upload_id, list(parts))
        if self.delay:
            await asyncio.sleep(self.delay)
        return await super().complete(key, upload_id, parts)

    async def abort(self, key, upload_id):
        self._enter("abort", key, upload_id)
        return await super().abort(key, upload_id)


async def body_of(data: bytes, chunk_size: int = 4):
    """Async byte stream over ``data``, like a request body."""
    for i in range(0, len(data), chunk_size):
        yield data[i:i + chunk_size]


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
async def client(app, config, store) -> AsyncClient:
    """Create an async test client with a fresh upload core per test."""
    old_state = (app.state.store, app.state.registry, app.state.orchestrator)

    registry = SessionRegistry(store, config.uploads.store_timeout_seconds)
    app.state.store = store
    app.state.registry = registry
    app.state.orchestrator = UploadOrchestrator(
        registry, store, store_timeout=config.uploads.store_timeout_seconds
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.state.store, app.state.registry, app.state.orchestrator = old_state
