"""Domain Types — enums, cache keys and paging bounds shared across the pipeline.

Invariants:
    - Email is the sole natural key; every cache key is derived from it
    - Staging keys are "pending:<email>", completion keys are "completed:<email>"
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - str Enums: serialize to JSON without custom encoders
    - Paging bounds live here so routes and reader agree on them
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

Email = NewType("Email", str)

PENDING_PREFIX = "pending"
COMPLETED_PREFIX = "completed"


def pending_key(email: str) -> str:
    """Staging entry key for a not-yet-persisted submission."""
    return f"{PENDING_PREFIX}:{email}"


def completed_key(email: str) -> str:
    """Completion entry key for an already-persisted row."""
    return f"{COMPLETED_PREFIX}:{email}"


def normalize_email(email: str) -> Email:
    return Email(email.strip().lower())


# ─── Categorical Attributes ──────────────────────────────────────

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non-binary"
    PREFER_NOT_TO_SAY = "prefer-not-to-say"


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"
    INTERSEX = "intersex"


# ─── Pipeline State ──────────────────────────────────────────────

class ConsumerState(str, Enum):
    """Relay consumer lifecycle. DISCONNECTED is both initial and terminal."""
    DISCONNECTED = "disconnected"
    SUBSCRIBED = "subscribed"
    POLLING = "polling"
    PROCESSING = "processing"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class Dependency(str, Enum):
    """The three external stores the service depends on."""
    CACHE = "cache"
    DATABASE = "database"
    RELAY = "relay"


# ─── Paging ──────────────────────────────────────────────────────

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500
DEFAULT_OFFSET = 0
