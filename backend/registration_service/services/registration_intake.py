"""Registration Intake — the synchronous half of the pipeline: validate, stage, publish.

Invariants:
    - Validation runs before any IO: an invalid submission touches no store
    - Staging must succeed before publish; a staging failure never reaches the relay
    - Success means "staged and acknowledged by the relay", never "persisted"
    - The whole submission is bounded by deadline_seconds
    - On deadline expiry the staging write keeps running in the background
    - The relay is handed what is left of the deadline: a broker outage surfaces as
      RelayUnavailable, only a relay that ignores its budget ends in SubmissionTimeout

Design Decisions:
    - Staging runs as its own task wrapped in asyncio.shield: the client's deadline
      cancels the wait, not the write (a retried submission finds its witness)
    - Background staging tasks are referenced in a set until done, so they are not
      garbage-collected mid-flight
"""

import asyncio
import logging
from typing import Any

from registration_service.core.errors import SubmissionTimeout
from registration_service.core.repository_protocols import RelayPublisher
from registration_service.core.validate_registration import validate_registration
from registration_service.schemas.registration import (
    RegistrationRecord, SubmissionReceipt,
)
from registration_service.services.registration_cache import StagingCache

logger = logging.getLogger(__name__)

RELAY_BUDGET_MARGIN_SECONDS = 0.05


class RegistrationIntake:
    """Accepts submissions and hands them to the relay."""

    def __init__(
        self,
        staging: StagingCache,
        publisher: RelayPublisher,
        topic: str,
        deadline_seconds: float = 5.0,
    ):
        self._staging = staging
        self._publisher = publisher
        self._topic = topic
        self._deadline_seconds = deadline_seconds
        self._background: set[asyncio.Task] = set()

    async def submit(self, payload: Any) -> SubmissionReceipt:
        """Validate, stage and publish one submission."""
        record = validate_registration(payload)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._deadline_seconds

        staging_task = asyncio.ensure_future(self._staging.put(record))
        self._track(staging_task)
        try:
            staging_key = await asyncio.wait_for(
                asyncio.shield(staging_task), timeout=self._remaining(loop, deadline),
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Submission deadline hit while staging; write continues in background",
                extra={"email": record.email},
            )
            raise SubmissionTimeout(self._deadline_seconds, "staging")

        await self._publish(record, loop, deadline)
        logger.info(
            "Registration submitted", extra={"email": record.email, "topic": self._topic},
        )
        return SubmissionReceipt(
            email=record.email, staging_key=staging_key, topic=self._topic,
        )

    async def drain(self) -> None:
        """Wait for background staging writes (called on shutdown)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _publish(
        self, record: RegistrationRecord, loop: asyncio.AbstractEventLoop, deadline: float,
    ) -> None:
        remaining = self._remaining(loop, deadline)
        # The relay gets a slightly smaller budget so its own RelayUnavailable
        # wins over the outer timeout.
        budget = remaining - RELAY_BUDGET_MARGIN_SECONDS
        try:
            if budget <= 0:
                raise asyncio.TimeoutError
            await asyncio.wait_for(
                self._publisher.publish(self._topic, record, timeout_seconds=budget),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Submission deadline hit while publishing",
                extra={"email": record.email, "topic": self._topic},
            )
            raise SubmissionTimeout(self._deadline_seconds, "publish")

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Already surfaced to the caller when it was still waiting;
            # logged here for writes that outlived their request.
            logger.debug(f"Staging task finished with error: {exc}")

    @staticmethod
    def _remaining(loop: asyncio.AbstractEventLoop, deadline: float) -> float:
        return max(0.0, deadline - loop.time())
