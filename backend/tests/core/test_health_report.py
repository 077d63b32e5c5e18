"""Health Report — tests for pure health aggregation.

Tests cover:
    - Composite is healthy only when every dependency is healthy
    - One failing dependency leaves the others' detail untouched
    - Readiness requires the relay to have connected at least once
"""

from registration_service.core.domain_types import HealthStatus
from registration_service.core.health_report import (
    ProbeResult, build_health_report, build_readiness_report, composite_status, is_ready,
)


def _probe(name, healthy=True, error=None):
    status = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
    return ProbeResult(name=name, status=status, latency_ms=1.234, error=error)


def test_all_healthy_is_healthy():
    results = [_probe("cache"), _probe("database"), _probe("relay")]
    assert composite_status(results) == HealthStatus.HEALTHY


def test_no_results_is_unhealthy():
    assert composite_status([]) == HealthStatus.UNHEALTHY


def test_single_failure_keeps_other_details_healthy():
    results = [
        _probe("cache"),
        _probe("database", healthy=False, error="OperationalError"),
        _probe("relay"),
    ]
    report = build_health_report(results, uptime_seconds=12.5, timestamp="t")
    assert report["status"] == "unhealthy"
    assert report["services"]["cache"]["status"] == "healthy"
    assert report["services"]["relay"]["status"] == "healthy"
    assert report["services"]["database"] == {
        "status": "unhealthy", "latency_ms": 1.23, "error": "OperationalError",
    }
    assert report["uptime_seconds"] == 12.5


def test_healthy_detail_has_no_error_key():
    report = build_health_report([_probe("cache")], uptime_seconds=0, timestamp="t")
    assert "error" not in report["services"]["cache"]
    assert report["message"] == "OK"


def test_readiness_requires_relay_connected_once():
    results = [_probe("cache"), _probe("database")]
    assert is_ready(build_readiness_report(results, relay_connected_once=True))
    report = build_readiness_report(results, relay_connected_once=False)
    assert not is_ready(report)
    assert report["checks"]["relay_connected"] is False


def test_readiness_fails_when_a_store_fails():
    results = [_probe("cache", healthy=False), _probe("database")]
    report = build_readiness_report(results, relay_connected_once=True)
    assert report["status"] == "not_ready"
    assert report["checks"]["cache"] == "unhealthy"
