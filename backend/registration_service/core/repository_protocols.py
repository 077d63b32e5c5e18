"""Boundary Protocols — contracts between the pipeline and its external stores.

Invariants:
    - Services depend on these Protocols, never on redis/aiokafka/SQLAlchemy types
    - Implementations are constructed explicitly and injected (no module singletons)
    - ping() returns bool and reports failure by returning False or raising;
      callers treat both the same way

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - RelayMessage is a concrete dataclass carrying its own ack callback so the
      consumer can acknowledge without knowing which transport produced it
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from registration_service.schemas.registration import (
    RegistrationRecord, RegistrationRow,
)


@dataclass
class RelayMessage:
    """One delivery from the relay. Delivery is at-least-once."""
    topic: str
    partition: int
    offset: int
    key: bytes | None
    value: bytes | None
    timestamp_ms: int | None = None
    _ack: Callable[["RelayMessage"], Awaitable[None]] | None = field(
        default=None, repr=False, compare=False,
    )

    async def ack(self) -> None:
        """Commit this message's offset. Idempotent on the broker side."""
        if self._ack is not None:
            await self._ack(self)


class KeyValueStore(Protocol):
    """Contract for the staging/completion store."""
    async def put(self, key: str, value: dict, ttl_seconds: int) -> None: ...
    async def get(self, key: str) -> dict | None: ...
    async def delete(self, key: str) -> None: ...
    async def ping(self) -> bool: ...


class RelayPublisher(Protocol):
    """Contract for the producer side of the relay."""
    @property
    def connected_once(self) -> bool: ...
    async def publish(
        self, topic: str, record: RegistrationRecord, timeout_seconds: float | None = None,
    ) -> None: ...
    async def ping(self) -> bool: ...


class RelaySubscription(Protocol):
    """Contract for the consumer side of the relay.

    A paused partition is left out of fetch() until resumed.
    """
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    async def fetch(self) -> dict[int, list[RelayMessage]]: ...
    async def rewind(self, message: RelayMessage) -> None: ...
    def pause(self, partition: int) -> None: ...
    def resume(self, partition: int) -> None: ...


class DeadLetterSink(Protocol):
    """Contract for the poison-message destination."""
    async def send(self, message: RelayMessage, reason: str) -> None: ...


class RegistrationRepository(Protocol):
    """Contract for the system of record."""
    async def upsert(self, record: RegistrationRecord) -> RegistrationRow: ...
    async def find_by_email(self, email: str) -> RegistrationRow | None: ...
    async def list_page(self, limit: int, offset: int) -> list[RegistrationRow]: ...
    async def ping(self) -> bool: ...
