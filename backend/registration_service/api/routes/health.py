"""Health & Readiness Probes — aggregate, readiness and liveness for container orchestration.

Invariants:
    - GET /health/live always returns 200 if the process is up (liveness)
    - GET /health/ready returns 503 unless the relay connected once and both stores answer
    - GET /health returns 503 if any of cache, database, relay is unhealthy

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from the
      load balancer; a dependency outage must not trigger restarts
    - Liveness does not touch the container, so it answers even during startup
"""

import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from registration_service.api.dependencies import get_health
from registration_service.core.domain_types import HealthStatus
from registration_service.core.health_report import is_ready
from registration_service.services.health_aggregator import HealthAggregator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("")
async def health_check(health: HealthAggregator = Depends(get_health)):
    """Aggregate status with per-dependency detail."""
    report = await health.check()
    code = (
        status.HTTP_200_OK
        if report["status"] == HealthStatus.HEALTHY.value
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=code, content=report)


@router.get("/ready")
async def readiness_check(health: HealthAggregator = Depends(get_health)):
    """Readiness probe — relay connected once, cache and database reachable."""
    report = await health.readiness()
    if not is_ready(report):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=report,
        )
    return report


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {"status": "alive"}
