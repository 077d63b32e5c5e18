"""Redis Key-Value Store — staging/completion store behind KeyValueStore.

Invariants:
    - Values are JSON documents; put() always overwrites and always sets a TTL
    - delete() is idempotent (DEL on a missing key is not an error)
    - Every RedisError maps to DependencyUnavailable("cache", <operation>)
    - The connection pool is bounded (max_connections)

Design Decisions:
    - redis.asyncio over a thread-pool sync client: the request path is async end to end
    - A corrupt (non-JSON) value is treated as a miss: the cache is never authoritative
"""

import json
import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from registration_service.core.domain_types import Dependency
from registration_service.core.errors import DependencyUnavailable

logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """JSON key-value store on a pooled async Redis client."""

    def __init__(self, client: Redis):
        self._client = client

    @classmethod
    def from_url(
        cls, url: str, max_connections: int = 50, socket_timeout: float = 2.0,
    ) -> "RedisKeyValueStore":
        pool = ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )
        return cls(Redis(connection_pool=pool))

    async def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        payload = json.dumps(value, ensure_ascii=False, default=str)
        try:
            await self._client.set(key, payload, ex=ttl_seconds)
        except RedisError as e:
            raise self._unavailable("put", e)

    async def get(self, key: str) -> dict | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            raise self._unavailable("get", e)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(
                f"Discarding undecodable cache value under {key}",
                extra={"dependency": Dependency.CACHE.value},
            )
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise self._unavailable("delete", e)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose(close_connection_pool=True)
        logger.info("Redis client disconnected")

    def _unavailable(self, operation: str, e: Exception) -> DependencyUnavailable:
        logger.error(
            f"Redis {operation} failed: {e}",
            extra={"dependency": Dependency.CACHE.value},
        )
        return DependencyUnavailable(
            Dependency.CACHE.value, operation, e.__class__.__name__,
        )
