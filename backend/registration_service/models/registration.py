"""Registration ORM — the system-of-record row for one registrant.

Invariants:
    - email is UNIQUE: at most one row per registrant (upsert target)
    - id is a server-assigned integer primary key
    - created_at is set once; updated_at advances on every upsert

Design Decisions:
    - Categorical attributes stored as String: enum sets are enforced by the
      validator, keeping the table open to new values without a migration
    - created_at indexed: list pages are ordered newest-first
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from registration_service.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Registration(Base):
    """One persisted registration, keyed by email."""
    __tablename__ = "registrations"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True,
    )
    gender: Mapped[str] = mapped_column(String(50), nullable=False)
    sex: Mapped[str] = mapped_column(String(50), nullable=False)
    occupation: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("idx_registrations_created_at", "created_at"),
    )
