"""
Pytest configuration and common fixtures for WhatsGate tests.

Provides shared fixtures and configuration for all test modules.
"""

import os
from datetime import UTC, datetime

# Settings are read once at import time, so the environment is fixed here
os.environ["ENVIRONMENT"] = "PROD"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ["SESSION_BACKEND"] = "memory"
os.environ.pop("PROTOCOL_FACTORY", None)

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from fakes import TENANT, FakeProtocolFactory, seed_session  # noqa: E402

from whatsgate.connection.lifecycle import (  # noqa: E402
    ConnectionLifecycleController,
    LifecycleConfig,
)
from whatsgate.connection.media import MediaDownloader  # noqa: E402
from whatsgate.persistence.memory import MemorySessionBackend  # noqa: E402
from whatsgate.persistence.session_store import SessionStore  # noqa: E402


class Clock:
    """Settable UTC clock for expiry tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def memory_backend() -> MemorySessionBackend:
    return MemorySessionBackend()


@pytest.fixture
def store(memory_backend) -> SessionStore:
    return SessionStore(memory_backend)


@pytest.fixture
def fast_config() -> LifecycleConfig:
    """Lifecycle timings small enough for unit tests."""
    return LifecycleConfig(
        request_timeout_seconds=1.0,
        connect_settle_seconds=0,
        retry_delay_seconds=0,
        max_connect_retries=2,
        pairing_window_seconds=0.2,
    )


@pytest.fixture
def protocol_factory() -> FakeProtocolFactory:
    return FakeProtocolFactory()


@pytest.fixture
def downloader() -> MagicMock:
    mock = MagicMock(spec=MediaDownloader)
    mock.download = AsyncMock(return_value=b"\x89PNG fake image")
    return mock


@pytest.fixture
def controller(store, protocol_factory, fast_config, downloader):
    return ConnectionLifecycleController(
        store, protocol_factory, config=fast_config, downloader=downloader
    )


@pytest.fixture
def registered_session(memory_backend):
    """Seed a paired tenant session straight into the memory backend."""
    return seed_session(memory_backend, TENANT)


@pytest.fixture
def mock_redis():
    """Mock redis.asyncio client with a transactional pipeline."""
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.watch = AsyncMock()
    pipe.hget = AsyncMock(return_value=None)
    pipe.zrangebyscore = AsyncMock(return_value=[])
    pipe.reset = AsyncMock()
    pipe.execute = AsyncMock(return_value=[1, 1, True, 1])

    mock = MagicMock()
    mock.pipeline = MagicMock(return_value=pipe)
    mock.ping = AsyncMock(return_value=True)
    mock.get = AsyncMock(return_value=None)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.hget = AsyncMock(return_value=None)
    mock.hgetall = AsyncMock(return_value={})
    mock.zrangebyscore = AsyncMock(return_value=[])
    mock.pipe = pipe
    return mock
