"""Health Aggregator — isolated, time-boxed probes of cache, database and relay.

Invariants:
    - Each probe runs under its own timeout; a hung or raising probe marks only
      its own dependency unhealthy
    - check() and readiness() never raise
    - liveness() is unconditional: it reflects the process, not its dependencies

Design Decisions:
    - Probes run concurrently (asyncio.gather) so one slow dependency does not
      stretch the whole report past a single timeout
    - Aggregation is pure (core/health_report.py); this class only does the IO
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from registration_service.core.domain_types import Dependency, HealthStatus
from registration_service.core.health_report import (
    ProbeResult, build_health_report, build_readiness_report,
)
from registration_service.core.repository_protocols import (
    KeyValueStore, RegistrationRepository, RelayPublisher,
)

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


class HealthAggregator:
    """Composite health, readiness and liveness signals."""

    def __init__(
        self,
        store: KeyValueStore,
        repository: RegistrationRepository,
        relay: RelayPublisher,
        timeout_seconds: float = 2.0,
    ):
        self._relay = relay
        self._timeout = timeout_seconds
        self._probes: dict[str, Probe] = {
            Dependency.CACHE.value: store.ping,
            Dependency.DATABASE.value: repository.ping,
            Dependency.RELAY.value: relay.ping,
        }
        self._started = time.monotonic()

    async def check(self) -> dict:
        """Aggregate status with per-dependency detail."""
        results = await self._probe_all()
        report = build_health_report(
            results,
            uptime_seconds=time.monotonic() - self._started,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        if report["status"] != HealthStatus.HEALTHY.value:
            logger.warning(
                "Health check degraded",
                extra={"dependency": ",".join(r.name for r in results if not r.healthy)},
            )
        return report

    async def readiness(self) -> dict:
        """Relay connected at least once AND cache AND database answer."""
        results = await self._probe_all(
            names=(Dependency.CACHE.value, Dependency.DATABASE.value),
        )
        return build_readiness_report(results, self._relay.connected_once)

    def liveness(self) -> dict:
        return {"status": "alive"}

    async def _probe_all(self, names: tuple[str, ...] | None = None) -> list[ProbeResult]:
        selected = names or tuple(self._probes)
        return list(await asyncio.gather(
            *(self._run_probe(name, self._probes[name]) for name in selected),
        ))

    async def _run_probe(self, name: str, probe: Probe) -> ProbeResult:
        start = time.monotonic()
        try:
            ok = await asyncio.wait_for(probe(), timeout=self._timeout)
            error = None if ok else "probe returned false"
        except asyncio.TimeoutError:
            ok, error = False, f"timed out after {self._timeout:g}s"
        except Exception as e:
            ok, error = False, e.__class__.__name__
        latency_ms = (time.monotonic() - start) * 1000
        status = HealthStatus.HEALTHY if ok else HealthStatus.UNHEALTHY
        return ProbeResult(name=name, status=status, latency_ms=latency_ms, error=error)
