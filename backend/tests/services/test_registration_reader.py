"""Registration Reader — tests for cache-aside lookups and paging.

Tests cover:
    - Miss → system of record → cache refilled with the read TTL
    - Hit → cached row, even when stale; expiry brings the fresh row back
    - Absent rows are not cached (no negative caching)
    - Cache outage degrades to the system of record
    - Database outage → DependencyUnavailable("database"), including a refused
      connection the driver raises as a bare OSError
    - Paging newest-first, clamped limit/offset
"""

import pytest

from registration_service.core.errors import DependencyUnavailable, PersistenceError
from registration_service.core.validate_registration import validate_registration
from registration_service.infrastructure.database import DatabaseSessionManager
from registration_service.infrastructure.registration_repository import (
    SqlRegistrationRepository,
)
from registration_service.services.registration_cache import CompletionCache
from registration_service.services.registration_reader import RegistrationReader

from tests.fakes import BrokenRepository, ann_payload


def _ann(**overrides):
    return validate_registration(ann_payload(**overrides))


async def test_miss_reads_database_and_refills_with_read_ttl(container, repository, store):
    await repository.upsert(_ann())

    row = await container.reader.get_by_email("ann@x.com")

    assert row.email == "ann@x.com"
    assert store.data["completed:ann@x.com"]["id"] == row.id
    assert store.ttls["completed:ann@x.com"] == 3600


async def test_lookup_normalizes_email(container, repository):
    await repository.upsert(_ann())
    row = await container.reader.get_by_email("  ANN@x.com ")
    assert row.email == "ann@x.com"


async def test_hit_serves_cache_until_expiry(container, repository, store):
    await repository.upsert(_ann())
    await container.reader.get_by_email("ann@x.com")

    # Written straight to the database: the cache does not see it
    await repository.upsert(_ann(occupation="Manager"))
    stale = await container.reader.get_by_email("ann@x.com")
    assert stale.occupation == "Engineer"

    store.expire("completed:ann@x.com")
    fresh = await container.reader.get_by_email("ann@x.com")
    assert fresh.occupation == "Manager"


async def test_absent_row_is_not_cached(container, store):
    assert await container.reader.get_by_email("nobody@x.com") is None
    assert "completed:nobody@x.com" not in store.data
    assert store.puts == []


async def test_malformed_cache_entry_reads_as_miss(container, repository, store):
    await repository.upsert(_ann())
    store.data["completed:ann@x.com"] = {"email": "ann@x.com"}

    row = await container.reader.get_by_email("ann@x.com")

    assert row.first_name == "Ann"
    assert store.data["completed:ann@x.com"]["first_name"] == "Ann"


async def test_cache_outage_falls_back_to_database(container, repository, store):
    await repository.upsert(_ann())
    store.available = False

    row = await container.reader.get_by_email("ann@x.com")

    assert row.email == "ann@x.com"


async def test_database_outage_is_dependency_unavailable(store):
    reader = RegistrationReader(BrokenRepository(), CompletionCache(store))
    with pytest.raises(DependencyUnavailable) as exc:
        await reader.get_by_email("ann@x.com")
    assert exc.value.dependency == "database"

    with pytest.raises(DependencyUnavailable):
        await reader.list_page()


class RefusedSession:
    """Session whose driver cannot open a connection."""

    async def execute(self, *args, **kwargs):
        raise ConnectionRefusedError(111, "Connection refused")

    async def rollback(self):
        pass

    async def close(self):
        pass


async def test_refused_connection_is_dependency_unavailable(test_engine, store):
    db_manager = DatabaseSessionManager.from_engine(test_engine)
    db_manager._session_factory = RefusedSession
    reader = RegistrationReader(SqlRegistrationRepository(db_manager), CompletionCache(store))

    with pytest.raises(DependencyUnavailable) as exc:
        await reader.get_by_email("ann@x.com")
    assert exc.value.dependency == "database"
    assert exc.value.http_status == 503

    with pytest.raises(DependencyUnavailable):
        await reader.list_page()


async def test_refused_connection_maps_to_persistence_error(test_engine):
    db_manager = DatabaseSessionManager.from_engine(test_engine)
    with pytest.raises(PersistenceError) as exc:
        async with db_manager.session():
            raise ConnectionRefusedError(111, "Connection refused")
    assert exc.value.operation == "connect"


async def test_list_page_newest_first(container, repository):
    for name in ("first", "second", "third"):
        await repository.upsert(_ann(email=f"{name}@x.com"))

    page = await container.reader.list_page(limit=2)

    assert [r.email for r in page] == ["third@x.com", "second@x.com"]


async def test_list_page_clamps_limit_and_offset(container, repository):
    for name in ("first", "second"):
        await repository.upsert(_ann(email=f"{name}@x.com"))

    assert len(await container.reader.list_page(limit=0, offset=-3)) == 1
    assert len(await container.reader.list_page(limit=10_000)) == 2
