"""Relay Worker — runs the relay consumer without the HTTP surface.

Usage:
    python -m registration_service.worker

Invariants:
    - SIGINT/SIGTERM request a clean stop: the in-flight batch finishes, offsets of
      persisted messages are committed, then every client is released
    - Exit code 1 if startup fails (database, Redis or Kafka unreachable)

Design Decisions:
    - Same open_container() as the API: one wiring path for both processes
"""

import asyncio
import logging
import signal
import sys

from registration_service.config import get_settings
from registration_service.infrastructure.observability import setup_logging
from registration_service.services.container import open_container

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    settings = get_settings()
    async with open_container(settings) as container:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop, container, sig)
        logger.info("Relay worker started", extra={"topic": settings.kafka_topic})
        await container.consumer.run()
    logger.info("Relay worker stopped")


def _request_stop(container, sig: signal.Signals) -> None:
    logger.info(f"{sig.name} received, shutting down gracefully...")
    container.consumer.stop()


def main() -> int:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    try:
        asyncio.run(run_worker())
    except Exception as e:
        logger.error(f"Relay worker failed: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
