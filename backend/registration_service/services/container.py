"""Service Container — explicit construction and scoped lifecycle of every client handle.

Invariants:
    - Every external client is created here and injected; nothing is a module global
    - open_container() releases everything it acquired, in reverse order, even on error
    - Shutdown order: consumer, in-flight staging writes, producer, cache, database

Design Decisions:
    - AsyncExitStack over hand-written try/finally chains: each acquisition registers
      its own release immediately after it succeeds
    - build_container() takes already-built boundaries so tests wire in fakes without
      touching redis/kafka/postgres
"""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from registration_service.config import Settings
from registration_service.core.repository_protocols import (
    DeadLetterSink, KeyValueStore, RegistrationRepository, RelayPublisher,
    RelaySubscription,
)
from registration_service.infrastructure.database import DatabaseSessionManager
from registration_service.infrastructure.kafka_relay import (
    KafkaDeadLetterSink, KafkaRelayProducer, KafkaRelaySubscription,
)
from registration_service.infrastructure.redis_store import RedisKeyValueStore
from registration_service.infrastructure.registration_repository import (
    SqlRegistrationRepository,
)
from registration_service.services.health_aggregator import HealthAggregator
from registration_service.services.registration_cache import (
    CompletionCache, StagingCache,
)
from registration_service.services.registration_intake import RegistrationIntake
from registration_service.services.registration_persistence import RegistrationUpserter
from registration_service.services.registration_reader import RegistrationReader
from registration_service.services.relay_consumer import RelayConsumer

logger = logging.getLogger(__name__)

_CONSUMER_STOP_GRACE_SECONDS = 10.0


@dataclass
class ServiceContainer:
    """Every pipeline component, wired against one set of boundaries."""
    settings: Settings
    intake: RegistrationIntake
    reader: RegistrationReader
    upserter: RegistrationUpserter
    consumer: RelayConsumer
    health: HealthAggregator
    _consumer_task: asyncio.Task | None = field(default=None, repr=False)

    def start_consumer(self) -> asyncio.Task:
        """Run the relay consumer as a background task of the current loop."""
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(
                self.consumer.run(), name="relay-consumer",
            )
            self._consumer_task.add_done_callback(_log_consumer_exit)
        return self._consumer_task

    async def stop_consumer(self) -> None:
        task = self._consumer_task
        if task is None or task.done():
            return
        self.consumer.stop()
        try:
            await asyncio.wait_for(task, timeout=_CONSUMER_STOP_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Consumer did not stop in time; cancelled")
        except asyncio.CancelledError:
            pass


def build_container(
    settings: Settings,
    *,
    store: KeyValueStore,
    repository: RegistrationRepository,
    publisher: RelayPublisher,
    subscription: RelaySubscription,
    dead_letter: DeadLetterSink,
) -> ServiceContainer:
    """Wire components against the given boundaries."""
    staging = StagingCache(store, ttl_seconds=settings.pending_ttl_seconds)
    completion = CompletionCache(
        store,
        write_ttl_seconds=settings.completed_ttl_seconds,
        read_ttl_seconds=settings.read_ttl_seconds,
    )
    upserter = RegistrationUpserter(repository, completion, staging)
    return ServiceContainer(
        settings=settings,
        intake=RegistrationIntake(
            staging, publisher, settings.kafka_topic,
            deadline_seconds=settings.submission_deadline_seconds,
        ),
        reader=RegistrationReader(repository, completion),
        upserter=upserter,
        consumer=RelayConsumer(
            subscription, upserter, dead_letter,
            retry_base_delay_ms=settings.consumer_retry_base_delay_ms,
            retry_max_delay_ms=settings.consumer_retry_max_delay_ms,
        ),
        health=HealthAggregator(
            store, repository, publisher,
            timeout_seconds=settings.health_check_timeout_seconds,
        ),
    )


@asynccontextmanager
async def open_container(
    settings: Settings, run_consumer: bool = False,
) -> AsyncIterator[ServiceContainer]:
    """Connect database, Redis and Kafka; yield the container; release all of it."""
    async with AsyncExitStack() as stack:
        db_manager = DatabaseSessionManager(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        stack.push_async_callback(db_manager.dispose)
        await db_manager.create_schema()
        logger.info("PostgreSQL connected")

        store = RedisKeyValueStore.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
        stack.push_async_callback(store.close)

        producer = KafkaRelayProducer.from_settings(settings)
        await producer.start()
        stack.push_async_callback(producer.stop)

        container = build_container(
            settings,
            store=store,
            repository=SqlRegistrationRepository(db_manager),
            publisher=producer,
            subscription=KafkaRelaySubscription.from_settings(settings),
            dead_letter=KafkaDeadLetterSink(producer, settings.kafka_dead_letter_topic),
        )
        stack.push_async_callback(container.intake.drain)

        if run_consumer:
            container.start_consumer()
            stack.push_async_callback(container.stop_consumer)

        yield container


def _log_consumer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Relay consumer cancelled")
    elif task.exception() is not None:
        logger.error(
            f"Relay consumer crashed: {task.exception()}",
            exc_info=task.exception(),
        )
    else:
        logger.info("Relay consumer stopped")
