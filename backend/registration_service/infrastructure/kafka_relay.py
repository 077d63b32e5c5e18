"""Kafka Relay — ack-based producer, manual-commit subscription and dead-letter sink.

Invariants:
    - publish() returns only after the broker acknowledged the write (acks="all")
    - Transient send failures: bounded retries with exponential backoff (±25% jitter)
    - Non-retriable failures or exhausted retries: RelayUnavailable
    - With timeout_seconds, each attempt is bounded by the remaining budget and a
      backoff that would overrun it raises RelayUnavailable instead of sleeping
    - Messages are keyed by email, so the broker partitions by email
    - Offsets are committed explicitly (enable_auto_commit=False), one message at a time
    - connected_once flips to True on the first successful producer start and never back

Design Decisions:
    - aiokafka over a sync client: producer and consumer share the service's event loop
    - Wrapper over raw AIOKafkaProducer: isolates retry/backoff from the intake service
    - Dead letters go to a sibling topic through the same ack-based producer, so a
      failed dead-letter write surfaces as RelayUnavailable instead of a silent drop
"""

import asyncio
import logging
import random

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition
from aiokafka.errors import (
    IllegalStateError, KafkaConnectionError, KafkaError, KafkaTimeoutError,
)

from registration_service.config import Settings
from registration_service.core.errors import RelayUnavailable
from registration_service.core.relay_envelope import (
    encode_dead_letter, encode_envelope, encode_key,
)
from registration_service.core.repository_protocols import RelayMessage
from registration_service.schemas.registration import RegistrationRecord

logger = logging.getLogger(__name__)


def _is_transient(e: Exception) -> bool:
    """Connection/timeouts and errors the broker marks as retriable."""
    if isinstance(e, (KafkaConnectionError, KafkaTimeoutError, asyncio.TimeoutError)):
        return True
    return bool(getattr(e, "retriable", False))


class KafkaRelayProducer:
    """Wraps AIOKafkaProducer with retry logic, backoff, and error mapping."""

    def __init__(
        self,
        producer: AIOKafkaProducer,
        ping_topic: str,
        max_retries: int = 8,
        base_delay_ms: int = 100,
        max_delay_ms: int = 5_000,
    ):
        self._producer = producer
        self._ping_topic = ping_topic
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._started = False
        self._connected_once = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "KafkaRelayProducer":
        producer = AIOKafkaProducer(
            bootstrap_servers=settings.kafka_brokers,
            client_id=settings.kafka_client_id,
            acks="all",
            enable_idempotence=True,
            request_timeout_ms=settings.kafka_request_timeout_ms,
            retry_backoff_ms=settings.kafka_base_delay_ms,
        )
        return cls(
            producer,
            ping_topic=settings.kafka_topic,
            max_retries=settings.kafka_max_retries,
            base_delay_ms=settings.kafka_base_delay_ms,
            max_delay_ms=settings.kafka_max_delay_ms,
        )

    @property
    def connected_once(self) -> bool:
        return self._connected_once

    async def start(self) -> None:
        await self._producer.start()
        self._started = True
        self._connected_once = True
        logger.info("Kafka producer connected")

    async def stop(self) -> None:
        if self._started:
            await self._producer.stop()
            self._started = False
            logger.info("Kafka producer disconnected")

    async def publish(
        self,
        topic: str,
        record: RegistrationRecord,
        timeout_seconds: float | None = None,
    ) -> None:
        """Publish a validated record, keyed by email."""
        await self.send(
            topic, encode_envelope(record), key=encode_key(record),
            timeout_seconds=timeout_seconds,
        )
        logger.info(
            f"Message sent to Kafka topic: {topic}",
            extra={"topic": topic, "email": record.email},
        )

    async def send(
        self,
        topic: str,
        value: bytes,
        key: bytes | None = None,
        timeout_seconds: float | None = None,
    ):
        """Send raw bytes and wait for the broker acknowledgement.

        timeout_seconds caps the whole retry sequence. A send cut short by the
        budget may still reach the broker later; consumers are idempotent.
        """
        if not self._started:
            raise RelayUnavailable(topic, "producer not started", attempts=0)
        loop = asyncio.get_running_loop()
        deadline = None if timeout_seconds is None else loop.time() + timeout_seconds
        for attempt in range(self.max_retries + 1):
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                raise RelayUnavailable(topic, "send budget exhausted", attempts=attempt)
            try:
                return await asyncio.wait_for(
                    self._producer.send_and_wait(topic, value=value, key=key),
                    timeout=remaining,
                )
            except KafkaError as e:
                if not _is_transient(e):
                    logger.error(f"Kafka send failed (non-retriable): {e}")
                    raise RelayUnavailable(topic, str(e), attempts=attempt + 1)
                await self._handle_transient_error(topic, e, attempt, deadline)
            except asyncio.TimeoutError as e:
                await self._handle_transient_error(topic, e, attempt, deadline)

    async def ping(self) -> bool:
        """Broker reachable and topic metadata resolvable."""
        if not self._started:
            return False
        try:
            partitions = await self._producer.partitions_for(self._ping_topic)
        except KafkaError as e:
            logger.error(f"Kafka health check failed: {e}")
            return False
        return bool(partitions)

    async def _handle_transient_error(
        self, topic: str, e: Exception, attempt: int, deadline: float | None = None,
    ) -> None:
        """Sleep before the next attempt, or raise once retries or budget run out."""
        if attempt >= self.max_retries:
            raise RelayUnavailable(
                topic, f"transient failure: {e.__class__.__name__}",
                attempts=attempt + 1,
            )
        delay = self._backoff(attempt)
        if deadline is not None and asyncio.get_running_loop().time() + delay / 1000 >= deadline:
            raise RelayUnavailable(
                topic, f"send budget exhausted after {e.__class__.__name__}",
                attempts=attempt + 1,
            )
        logger.warning(
            f"Transient Kafka error, retry after {delay}ms: {e}",
            extra={"topic": topic, "attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


class KafkaRelaySubscription:
    """Manual-commit consumer-group subscription to a single topic."""

    def __init__(
        self,
        consumer: AIOKafkaConsumer,
        topic: str,
        batch_size: int = 100,
        poll_timeout_ms: int = 1_000,
    ):
        self._consumer = consumer
        self._topic = topic
        self._batch_size = batch_size
        self._poll_timeout_ms = poll_timeout_ms

    @classmethod
    def from_settings(cls, settings: Settings) -> "KafkaRelaySubscription":
        consumer = AIOKafkaConsumer(
            settings.kafka_topic,
            bootstrap_servers=settings.kafka_brokers,
            client_id=settings.kafka_client_id,
            group_id=settings.kafka_group_id,
            enable_auto_commit=False,
            auto_offset_reset="latest",
        )
        return cls(
            consumer,
            topic=settings.kafka_topic,
            batch_size=settings.consumer_batch_size,
            poll_timeout_ms=settings.consumer_poll_timeout_ms,
        )

    async def start(self) -> None:
        await self._consumer.start()
        logger.info(
            "Kafka consumer connected and subscribed",
            extra={"topic": self._topic},
        )

    async def stop(self) -> None:
        await self._consumer.stop()
        logger.info("Kafka consumer disconnected")

    async def fetch(self) -> dict[int, list[RelayMessage]]:
        """Poll one batch, grouped by partition in offset order."""
        try:
            batches = await self._consumer.getmany(
                timeout_ms=self._poll_timeout_ms, max_records=self._batch_size,
            )
        except KafkaError as e:
            raise RelayUnavailable(self._topic, f"fetch failed: {e}")
        return {
            tp.partition: [
                RelayMessage(
                    topic=r.topic,
                    partition=r.partition,
                    offset=r.offset,
                    key=r.key,
                    value=r.value,
                    timestamp_ms=r.timestamp,
                    _ack=self._commit,
                )
                for r in records
            ]
            for tp, records in batches.items()
            if records
        }

    async def rewind(self, message: RelayMessage) -> None:
        """Reposition the partition so the message is delivered again."""
        self._consumer.seek(
            TopicPartition(message.topic, message.partition), message.offset,
        )

    def pause(self, partition: int) -> None:
        """Stop fetching from a partition until resume()."""
        try:
            self._consumer.pause(TopicPartition(self._topic, partition))
        except IllegalStateError:
            logger.info(f"Partition {partition} no longer assigned, not paused")

    def resume(self, partition: int) -> None:
        try:
            self._consumer.resume(TopicPartition(self._topic, partition))
        except IllegalStateError:
            # Revoked while paused; the next owner starts unpaused
            logger.info(f"Partition {partition} no longer assigned, not resumed")

    async def _commit(self, message: RelayMessage) -> None:
        tp = TopicPartition(message.topic, message.partition)
        await self._consumer.commit({tp: message.offset + 1})


class KafkaDeadLetterSink:
    """Routes poison messages to a dead-letter topic instead of dropping them."""

    def __init__(self, producer: KafkaRelayProducer, topic: str):
        self._producer = producer
        self._topic = topic

    async def send(self, message: RelayMessage, reason: str) -> None:
        value = encode_dead_letter(
            message.topic, message.partition, message.offset, message.value, reason,
        )
        await self._producer.send(self._topic, value, key=message.key)
        logger.warning(
            f"Message dead-lettered to {self._topic}: {reason}",
            extra={
                "topic": message.topic,
                "partition": message.partition,
                "offset": message.offset,
            },
        )
