"""Registration Caches — staging (pending) and completion entries over one KeyValueStore.

Invariants:
    - Staging entries: "pending:<email>", full submitted record, TTL pending_ttl
    - Completion entries: "completed:<email>", persisted row + completed_at
    - Neither cache is authoritative; the system of record is
    - Store failures propagate as DependencyUnavailable; callers decide whether to swallow

Design Decisions:
    - Two small classes over one generic: each owns its key scheme and TTL policy
    - Undecodable completion entries read as a miss (cache-aside refills them)
"""

import logging
from datetime import datetime, timezone

from pydantic import ValidationError as SchemaError

from registration_service.core.domain_types import completed_key, pending_key
from registration_service.core.repository_protocols import KeyValueStore
from registration_service.schemas.registration import (
    CompletionEntry, RegistrationRecord, RegistrationRow,
)

logger = logging.getLogger(__name__)


class StagingCache:
    """Time-boxed witness that a submission was received but not yet persisted."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = 3_600):
        self._store = store
        self.ttl_seconds = ttl_seconds

    async def put(self, record: RegistrationRecord) -> str:
        key = pending_key(record.email)
        await self._store.put(key, record.to_payload(), self.ttl_seconds)
        logger.info("Registration staged", extra={"email": record.email})
        return key

    async def get(self, email: str) -> RegistrationRecord | None:
        raw = await self._store.get(pending_key(email))
        return RegistrationRecord.model_validate(raw) if raw else None

    async def delete(self, email: str) -> None:
        await self._store.delete(pending_key(email))


class CompletionCache:
    """Read accelerator holding snapshots of persisted rows."""

    def __init__(
        self,
        store: KeyValueStore,
        write_ttl_seconds: int = 86_400,
        read_ttl_seconds: int = 3_600,
    ):
        self._store = store
        self.write_ttl_seconds = write_ttl_seconds
        self.read_ttl_seconds = read_ttl_seconds

    async def put(self, row: RegistrationRow, ttl_seconds: int | None = None) -> None:
        entry = CompletionEntry(
            **row.model_dump(), completed_at=datetime.now(timezone.utc),
        )
        await self._store.put(
            completed_key(row.email),
            entry.model_dump(mode="json"),
            ttl_seconds or self.write_ttl_seconds,
        )

    async def get(self, email: str) -> RegistrationRow | None:
        raw = await self._store.get(completed_key(email))
        if raw is None:
            return None
        try:
            return CompletionEntry.model_validate(raw).to_row()
        except SchemaError:
            logger.warning(
                "Ignoring malformed completion entry", extra={"email": email},
            )
            return None
