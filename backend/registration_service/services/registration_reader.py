"""Registration Reader — cache-aside point lookups and paged listing.

Invariants:
    - Cache hit returns the cached row (possibly stale, bounded by TTL)
    - Cache miss reads the system of record and repopulates with read_ttl
    - Absent rows return None and are never cached (no negative caching)
    - Paging is clamped to [1, MAX_PAGE_SIZE] and offset >= 0

Design Decisions:
    - A cache outage degrades reads to the system of record instead of failing them:
      the cache is never authoritative. The outage is logged, not swallowed silently.
    - A database failure on the read path surfaces as DependencyUnavailable("database"):
      PersistenceError is reserved for the asynchronous write path
"""

import logging

from registration_service.core.domain_types import (
    DEFAULT_OFFSET, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Dependency, normalize_email,
)
from registration_service.core.errors import DependencyUnavailable, PersistenceError
from registration_service.core.repository_protocols import RegistrationRepository
from registration_service.schemas.registration import RegistrationRow
from registration_service.services.registration_cache import CompletionCache

logger = logging.getLogger(__name__)


class RegistrationReader:
    """Read path over the completion cache and the system of record."""

    def __init__(self, repository: RegistrationRepository, completion: CompletionCache):
        self._repository = repository
        self._completion = completion

    async def get_by_email(self, email: str) -> RegistrationRow | None:
        email = normalize_email(email)
        cached = await self._cached(email)
        if cached is not None:
            logger.debug("User found in cache", extra={"email": email})
            return cached

        try:
            row = await self._repository.find_by_email(email)
        except PersistenceError as e:
            raise DependencyUnavailable(Dependency.DATABASE.value, "find_by_email", e.operation)
        if row is None:
            return None

        try:
            await self._completion.put(row, ttl_seconds=self._completion.read_ttl_seconds)
        except DependencyUnavailable as e:
            logger.warning(
                f"Completion cache refill skipped: {e.message}",
                extra={"email": email, "dependency": e.dependency},
            )
        return row

    async def list_page(
        self, limit: int = DEFAULT_PAGE_SIZE, offset: int = DEFAULT_OFFSET,
    ) -> list[RegistrationRow]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        try:
            return await self._repository.list_page(limit, offset)
        except PersistenceError as e:
            raise DependencyUnavailable(Dependency.DATABASE.value, "list_page", e.operation)

    async def _cached(self, email: str) -> RegistrationRow | None:
        try:
            return await self._completion.get(email)
        except DependencyUnavailable as e:
            logger.warning(
                f"Completion cache unavailable, reading system of record: {e.message}",
                extra={"email": email, "dependency": e.dependency},
            )
            return None
