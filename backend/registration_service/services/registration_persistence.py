"""Persistence Upserter — idempotent write to the system of record plus cache side effects.

Invariants:
    - upsert() is idempotent: replaying a record yields the same row, updated_at aside
    - Completion write-through and staging delete happen only after the DB commit
    - Cache side effects are NOT transactional with the DB write; their failure is
      logged and the upsert still succeeds (the read path self-heals the cache)
    - PersistenceError propagates untouched so the consumer can trigger redelivery

Design Decisions:
    - Staging entries of records that never persist are left to TTL expiry;
      there is no synchronous cleanup on failure
"""

import logging

from registration_service.core.errors import DependencyUnavailable
from registration_service.core.repository_protocols import RegistrationRepository
from registration_service.schemas.registration import (
    RegistrationRecord, RegistrationRow,
)
from registration_service.services.registration_cache import (
    CompletionCache, StagingCache,
)

logger = logging.getLogger(__name__)


class RegistrationUpserter:
    """Create-or-update by email, then refresh the caches."""

    def __init__(
        self,
        repository: RegistrationRepository,
        completion: CompletionCache,
        staging: StagingCache,
    ):
        self._repository = repository
        self._completion = completion
        self._staging = staging

    async def upsert(self, record: RegistrationRecord) -> RegistrationRow:
        row = await self._repository.upsert(record)
        await self._refresh_caches(row)
        logger.info("User saved to database", extra={"email": row.email})
        return row

    async def _refresh_caches(self, row: RegistrationRow) -> None:
        try:
            await self._completion.put(row)
        except DependencyUnavailable as e:
            logger.warning(
                f"Completion cache write skipped: {e.message}",
                extra={"email": row.email, "dependency": e.dependency},
            )
        try:
            await self._staging.delete(row.email)
        except DependencyUnavailable as e:
            logger.warning(
                f"Staging entry left to expire: {e.message}",
                extra={"email": row.email, "dependency": e.dependency},
            )
