"""SQL Registration Repository — the system of record behind RegistrationRepository.

Invariants:
    - upsert is INSERT ... ON CONFLICT (email) DO UPDATE: one row per email, ever
    - Replaying the same record changes only updated_at; id and created_at are kept
    - list_page orders by created_at DESC, then id DESC (stable newest-first)
    - Every failure surfaces as PersistenceError (raised by DatabaseSessionManager)

Design Decisions:
    - Dialect-specific insert (postgresql / sqlite) chosen at runtime: both expose
      the same on_conflict_do_update API, so tests run against SQLite
    - Timestamps come from an injected clock, not the database: replay tests need
      updated_at to advance deterministically
    - Row re-read after commit instead of RETURNING: identical on both dialects
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from registration_service.infrastructure.database import DatabaseSessionManager
from registration_service.models.registration import Registration
from registration_service.schemas.registration import (
    RegistrationRecord, RegistrationRow,
)

logger = logging.getLogger(__name__)

_UPDATABLE = ("first_name", "last_name", "gender", "sex", "occupation", "updated_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlRegistrationRepository:
    """Registration persistence on SQLAlchemy async sessions."""

    def __init__(
        self,
        db_manager: DatabaseSessionManager,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._db = db_manager
        self._clock = clock
        insert_fn = sqlite.insert if db_manager.dialect == "sqlite" else postgresql.insert
        self._insert = insert_fn

    async def upsert(self, record: RegistrationRecord) -> RegistrationRow:
        """Insert-or-update by email; returns the persisted row."""
        now = self._clock()
        stmt = self._insert(Registration).values(
            first_name=record.first_name,
            last_name=record.last_name,
            email=record.email,
            gender=record.gender,
            sex=record.sex,
            occupation=record.occupation,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Registration.email],
            set_={col: getattr(stmt.excluded, col) for col in _UPDATABLE},
        )
        async with self._db.session() as db:
            await db.execute(stmt)
            await db.commit()
            result = await db.execute(
                select(Registration).where(Registration.email == record.email),
            )
            row = RegistrationRow.model_validate(result.scalar_one())
        logger.info("Registration upserted", extra={"email": record.email})
        return row

    async def find_by_email(self, email: str) -> RegistrationRow | None:
        async with self._db.session() as db:
            result = await db.execute(
                select(Registration).where(Registration.email == email),
            )
            found = result.scalar_one_or_none()
        return RegistrationRow.model_validate(found) if found else None

    async def list_page(self, limit: int, offset: int) -> list[RegistrationRow]:
        query = (
            select(Registration)
            .order_by(Registration.created_at.desc(), Registration.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._db.session() as db:
            result = await db.execute(query)
            rows = result.scalars().all()
        return [RegistrationRow.model_validate(r) for r in rows]

    async def ping(self) -> bool:
        return await self._db.health_check()
