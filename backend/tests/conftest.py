"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Must be set before any application module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.models import Base
from shared.infrastructure.db import engine as app_engine
from shared.security.rate_limit import limiter
from ws_gateway.components.connection.heartbeat import HeartbeatMonitor
from ws_gateway.components.connection.rate_limiter import IdentityRateLimiter
from ws_gateway.components.core.dependencies import reset_singletons
from ws_gateway.components.data.chat_store import ChatStore
from ws_gateway.gateway import RoomBroadcastGateway


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


class FakeSender:
    """Stands in for a Starlette WebSocket; records every frame sent."""

    def __init__(self, fail: bool = False):
        self.frames: list[dict] = []
        self.fail = fail
        self.closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None

    async def send_json(self, data, mode: str = "text") -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.frames.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    def events(self, name: str) -> list:
        """Payloads of every frame with the given event name."""
        return [f["data"] for f in self.frames if f["event"] == name]

    def names(self) -> list[str]:
        return [f["event"] for f in self.frames]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture(scope="function")
def db_session_factory():
    """
    Fresh schema for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_session_factory):
    return ChatStore(session_factory=db_session_factory, timeout=5.0, max_messages_per_room=50)


@pytest_asyncio.fixture
async def gateway(store):
    """Gateway with default rooms seeded and a long heartbeat deadline."""
    await store.seed_default_rooms()
    gw = RoomBroadcastGateway(
        store,
        rate_limiter=IdentityRateLimiter(max_messages=30, window_seconds=60, block_seconds=300),
        heartbeat=HeartbeatMonitor(pong_timeout=30.0, ping_interval=60.0),
    )
    yield gw
    await gw.stop()


@pytest_asyncio.fixture
async def connect(gateway):
    """Factory: open a fake connection on the gateway and drop its initial ping."""

    async def _connect(connection_id: str, fail: bool = False) -> FakeSender:
        sender = FakeSender(fail=fail)
        await gateway.connect(connection_id, sender)
        sender.clear()
        return sender

    return _connect


@pytest.fixture
def client():
    """
    Test client for the full application, lifespan included.
    Every test starts from an empty database and fresh singletons.
    """
    from ws_gateway.main import app

    Base.metadata.drop_all(bind=app_engine)
    reset_singletons()
    limiter.reset()

    with TestClient(app) as test_client:
        yield test_client

    reset_singletons()
    Base.metadata.drop_all(bind=app_engine)
