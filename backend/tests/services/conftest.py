"""Service test fixtures — async SQLite system of record, in-memory cache/relay, FastAPI client.

Invariants:
    - Every test gets a fresh SQLite database file under tmp_path
    - Every session opens its own connection (NullPool), as sessions do against
      PostgreSQL: concurrent partition tasks never share a transaction
    - Cache, relay and dead-letter sink are in-process fakes (tests/fakes.py)
    - The repository clock ticks one second per call, so updated_at always advances
    - client sets app.state.container directly: ASGITransport does not run lifespan

Design Decisions:
    - SQLite file over :memory:: an in-memory database lives on a single shared
      connection, which interleaves concurrent sessions' commits
    - The repository picks the sqlite insert dialect, which supports the same
      ON CONFLICT upsert as PostgreSQL; writers queue on SQLite's busy timeout
    - Consumer backoff shrunk to milliseconds via Settings so retries do not slow tests
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from httpx import ASGITransport, AsyncClient

from registration_service.config import Settings
from registration_service.db.base import Base
from registration_service.infrastructure.database import DatabaseSessionManager
from registration_service.infrastructure.registration_repository import (
    SqlRegistrationRepository,
)
from registration_service.main import app
from registration_service.services.container import build_container

from tests.fakes import (
    FakeRelay, InMemoryKeyValueStore, RecordingDeadLetterSink, TickingClock,
)


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'registrations.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def db_manager(test_engine):
    return DatabaseSessionManager.from_engine(test_engine)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repository(db_manager, clock):
    return SqlRegistrationRepository(db_manager, clock=clock)


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def dead_letter():
    return RecordingDeadLetterSink()


@pytest.fixture
def settings():
    return Settings(
        consumer_retry_base_delay_ms=1,
        consumer_retry_max_delay_ms=5,
        submission_deadline_seconds=2.0,
        health_check_timeout_seconds=0.5,
    )


@pytest.fixture
def container(settings, store, repository, relay, dead_letter):
    return build_container(
        settings,
        store=store,
        repository=repository,
        publisher=relay,
        subscription=relay,
        dead_letter=dead_letter,
    )


@pytest.fixture
async def client(container):
    """FastAPI test client wired to the fake-backed container."""
    app.state.container = container
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    app.state.container = None
