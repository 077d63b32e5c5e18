"""Relay Consumer — long-running subscriber that drives persistence.

Invariants:
    - States: DISCONNECTED -> SUBSCRIBED -> POLLING -> PROCESSING -> POLLING ...,
      DISCONNECTED again after stop() (terminal)
    - An offset is committed only after the upserter returned successfully
    - Upsert failure: no commit, partition rewound to the failed offset and paused
      for a capped backoff, loop continues (at-least-once)
    - A paused partition never delays the others: the backoff is a not-before time
      checked at the top of each poll, not a sleep inside the batch
    - Poison message: dead-lettered, THEN committed; if the dead-letter write fails
      the message is rewound like any other failure (never silently dropped)
    - Within a partition messages are handled strictly one at a time, in offset order;
      partitions of one batch are handled concurrently

Design Decisions:
    - One task per partition per batch (asyncio.gather): a stuck key only stalls
      its own partition within the batch
    - Backoff via subscription pause/resume (aiokafka pause()/resume()): the broker
      stops handing out the failing partition while the rest keep flowing
    - Broad except around the upsert: any unexpected error is treated as transient,
      logged with traceback, and redelivered rather than crashing the loop
    - sleep is injectable so tests do not wait out a relay outage
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from registration_service.core.domain_types import ConsumerState
from registration_service.core.errors import PoisonMessage, RelayUnavailable
from registration_service.core.relay_envelope import decode_envelope
from registration_service.core.repository_protocols import (
    DeadLetterSink, RelayMessage, RelaySubscription,
)
from registration_service.services.registration_persistence import RegistrationUpserter

logger = logging.getLogger(__name__)


class RelayConsumer:
    """Pulls registration messages off the relay and persists them."""

    def __init__(
        self,
        subscription: RelaySubscription,
        upserter: RegistrationUpserter,
        dead_letter: DeadLetterSink,
        retry_base_delay_ms: int = 500,
        retry_max_delay_ms: int = 30_000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._subscription = subscription
        self._upserter = upserter
        self._dead_letter = dead_letter
        self._retry_base_delay_ms = retry_base_delay_ms
        self._retry_max_delay_ms = retry_max_delay_ms
        self._sleep = sleep
        self._state = ConsumerState.DISCONNECTED
        self._stopping = asyncio.Event()
        self._failures: dict[int, int] = {}
        self._paused_until: dict[int, float] = {}
        self.processed = 0
        self.dead_lettered = 0

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def paused_partitions(self) -> set[int]:
        return set(self._paused_until)

    async def run(self) -> None:
        """Subscribe and poll until stop() is called or the task is cancelled."""
        self._stopping.clear()
        self._paused_until.clear()
        await self._subscription.start()
        self._set_state(ConsumerState.SUBSCRIBED)
        try:
            while not self._stopping.is_set():
                await self.poll_once()
        finally:
            await self._subscription.stop()
            self._set_state(ConsumerState.DISCONNECTED)

    def stop(self) -> None:
        """Request shutdown; the loop exits after the in-flight batch."""
        self._stopping.set()

    async def poll_once(self) -> int:
        """Fetch one batch and process it. Returns messages committed."""
        self._set_state(ConsumerState.POLLING)
        self._resume_due_partitions()
        try:
            batches = await self._subscription.fetch()
        except RelayUnavailable as e:
            logger.error(f"Relay fetch failed: {e.message}", extra={"topic": e.topic})
            await self._sleep(self._retry_base_delay_ms / 1000)
            return 0
        if not batches:
            return 0

        self._set_state(ConsumerState.PROCESSING)
        try:
            done = await asyncio.gather(*(
                self._process_partition(messages) for messages in batches.values()
            ))
        finally:
            self._set_state(ConsumerState.POLLING)
        return sum(done)

    async def process(self, message: RelayMessage) -> bool:
        """Handle one message. True if committed, False if left for redelivery."""
        try:
            envelope = decode_envelope(message.value)
        except PoisonMessage as e:
            return await self._route_poison(message, e.reason)

        try:
            await self._upserter.upsert(envelope.record)
        except Exception as e:
            await self._redeliver(message, e)
            return False

        await self._ack(message)
        self.processed += 1
        return True

    async def _process_partition(self, messages: list[RelayMessage]) -> int:
        done = 0
        for message in messages:
            if not await self.process(message):
                # Rewound: the rest of this batch comes back in order
                break
            done += 1
        return done

    async def _route_poison(self, message: RelayMessage, reason: str) -> bool:
        logger.error(
            f"Poison message: {reason}",
            extra=self._extra(message, error_code="POISON_MESSAGE"),
        )
        try:
            await self._dead_letter.send(message, reason)
        except Exception as e:
            await self._redeliver(message, e)
            return False
        await self._ack(message)
        self.dead_lettered += 1
        return True

    async def _redeliver(self, message: RelayMessage, error: Exception) -> None:
        attempt = self._failures.get(message.partition, 0) + 1
        self._failures[message.partition] = attempt
        logger.error(
            f"Error processing relay message, will be redelivered: {error}",
            extra=self._extra(
                message, attempt=attempt,
                error_code=getattr(error, "code", error.__class__.__name__),
            ),
            exc_info=not hasattr(error, "code"),
        )
        try:
            await self._subscription.rewind(message)
        except Exception as e:
            logger.error(f"Rewind failed, relying on group rebalance: {e}")
        self._pause(message.partition, self._backoff(attempt))

    def _pause(self, partition: int, delay_ms: int) -> None:
        self._paused_until[partition] = (
            asyncio.get_running_loop().time() + delay_ms / 1000
        )
        self._subscription.pause(partition)

    def _resume_due_partitions(self) -> None:
        now = asyncio.get_running_loop().time()
        for partition, until in list(self._paused_until.items()):
            if until <= now:
                del self._paused_until[partition]
                self._subscription.resume(partition)

    async def _ack(self, message: RelayMessage) -> None:
        self._failures.pop(message.partition, None)
        try:
            await message.ack()
        except Exception as e:
            # Already persisted; a redelivery after a failed commit is an idempotent replay
            logger.warning(f"Offset commit failed: {e}", extra=self._extra(message))

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter, capped."""
        delay = min(
            self._retry_max_delay_ms,
            (2 ** (attempt - 1)) * self._retry_base_delay_ms,
        )
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _set_state(self, state: ConsumerState) -> None:
        if state != self._state:
            logger.debug(f"Consumer state {self._state.value} -> {state.value}")
            self._state = state

    @staticmethod
    def _extra(message: RelayMessage, **fields) -> dict:
        return {
            "topic": message.topic,
            "partition": message.partition,
            "offset": message.offset,
            **fields,
        }
