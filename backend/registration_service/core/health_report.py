"""Health Report — pure aggregation of per-dependency probe results.

Invariants:
    - PURE: no IO, no async
    - Composite status is healthy iff every dependency is healthy
    - A failing dependency never changes another dependency's reported status
    - Readiness additionally requires the relay to have connected at least once

Design Decisions:
    - Probe results are plain dataclasses; the aggregator (services/) does the IO
      and hands the outcomes here (functional core, imperative shell)
"""

from dataclasses import dataclass

from registration_service.core.domain_types import HealthStatus


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single dependency probe."""
    name: str
    status: HealthStatus
    latency_ms: float
    error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict:
        detail: dict = {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.error:
            detail["error"] = self.error
        return detail


def composite_status(results: list[ProbeResult]) -> HealthStatus:
    if results and all(r.healthy for r in results):
        return HealthStatus.HEALTHY
    return HealthStatus.UNHEALTHY


def build_health_report(
    results: list[ProbeResult], uptime_seconds: float, timestamp: str,
) -> dict:
    """Aggregate report consumed by the orchestrator and by operators."""
    status = composite_status(results)
    return {
        "status": status.value,
        "message": "OK" if status == HealthStatus.HEALTHY else "Degraded",
        "uptime_seconds": round(uptime_seconds, 3),
        "timestamp": timestamp,
        "services": {r.name: r.to_dict() for r in results},
    }


def build_readiness_report(
    results: list[ProbeResult], relay_connected_once: bool,
) -> dict:
    """Stricter than the aggregate: relay must have connected at least once."""
    ready = relay_connected_once and all(r.healthy for r in results)
    checks = {r.name: r.status.value for r in results}
    checks["relay_connected"] = relay_connected_once
    return {"status": "ready" if ready else "not_ready", "checks": checks}


def is_ready(report: dict) -> bool:
    return report["status"] == "ready"
