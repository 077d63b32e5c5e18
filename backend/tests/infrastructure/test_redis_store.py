"""Redis Key-Value Store — tests against a stub client.

Tests cover:
    - put() writes JSON with an expiry; get() decodes it
    - Missing and undecodable values read as None
    - RedisError → DependencyUnavailable("cache", <operation>)
    - ping() reports failure as False; close() releases the pool
"""

import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from registration_service.core.errors import DependencyUnavailable
from registration_service.infrastructure.redis_store import RedisKeyValueStore


class StubRedis:
    def __init__(self):
        self.values: dict[str, str] = {}
        self.expiries: dict[str, int] = {}
        self.down = False
        self.closed_with: dict | None = None

    def _check(self):
        if self.down:
            raise RedisConnectionError("Connection refused")

    async def set(self, key, value, ex=None):
        self._check()
        self.values[key] = value
        self.expiries[key] = ex
        return True

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def delete(self, key):
        self._check()
        return 1 if self.values.pop(key, None) is not None else 0

    async def ping(self):
        self._check()
        return True

    async def aclose(self, close_connection_pool=None):
        self.closed_with = {"close_connection_pool": close_connection_pool}


@pytest.fixture
def redis_client():
    return StubRedis()


@pytest.fixture
def kv(redis_client):
    return RedisKeyValueStore(redis_client)


async def test_put_writes_json_with_ttl(kv, redis_client):
    await kv.put("pending:ann@x.com", {"firstName": "Ann"}, 3600)
    assert json.loads(redis_client.values["pending:ann@x.com"]) == {"firstName": "Ann"}
    assert redis_client.expiries["pending:ann@x.com"] == 3600


async def test_get_round_trips(kv):
    await kv.put("completed:ann@x.com", {"id": 1, "email": "ann@x.com"}, 60)
    assert await kv.get("completed:ann@x.com") == {"id": 1, "email": "ann@x.com"}


async def test_get_missing_is_none(kv):
    assert await kv.get("completed:nobody@x.com") is None


async def test_undecodable_value_is_a_miss(kv, redis_client):
    redis_client.values["completed:ann@x.com"] = "{truncated"
    assert await kv.get("completed:ann@x.com") is None


async def test_delete_is_idempotent(kv, redis_client):
    await kv.put("pending:ann@x.com", {}, 60)
    await kv.delete("pending:ann@x.com")
    await kv.delete("pending:ann@x.com")
    assert "pending:ann@x.com" not in redis_client.values


@pytest.mark.parametrize("operation", ["put", "get", "delete"])
async def test_redis_errors_map_to_dependency_unavailable(kv, redis_client, operation):
    redis_client.down = True
    calls = {
        "put": lambda: kv.put("k", {}, 60),
        "get": lambda: kv.get("k"),
        "delete": lambda: kv.delete("k"),
    }
    with pytest.raises(DependencyUnavailable) as exc:
        await calls[operation]()
    assert exc.value.dependency == "cache"
    assert exc.value.operation == operation
    assert "ConnectionError" in exc.value.message


async def test_ping(kv, redis_client):
    assert await kv.ping() is True
    redis_client.down = True
    assert await kv.ping() is False


async def test_close_releases_pool(kv, redis_client):
    await kv.close()
    assert redis_client.closed_with == {"close_connection_pool": True}
