"""Fixtures shared by the engine tests."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from claimdesk.config import ClaimDeskConfig
from claimdesk.database import create_schema
from claimdesk.locks import AsyncioRequestLock
from claimdesk.tests.fakes import FakeLedger, InMemoryStore, RecordingDispatcher


@pytest.fixture
def config():
    return ClaimDeskConfig(timezone="Asia/Taipei", lock_timeout_seconds=0.5)


@pytest.fixture
def journal():
    """Shared ordered log of store saves and dispatcher sends."""
    return []


@pytest.fixture
def store(journal):
    return InMemoryStore(journal=journal)


@pytest.fixture
def dispatcher(journal):
    return RecordingDispatcher(journal=journal)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def lock(config):
    return AsyncioRequestLock(timeout_seconds=config.lock_timeout_seconds)


@pytest_asyncio.fixture
async def sqlite_engine():
    """In-memory SQLite engine with the schema created; one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()
