"""Route Dependencies — hand the container's components to route handlers.

Invariants:
    - Routes never construct clients; they receive components from app.state.container
    - A request arriving before startup finished gets 503, not AttributeError

Design Decisions:
    - FastAPI Depends over module imports: tests swap the container on app.state
"""

from fastapi import HTTPException, Request, status

from registration_service.services.container import ServiceContainer
from registration_service.services.health_aggregator import HealthAggregator
from registration_service.services.registration_intake import RegistrationIntake
from registration_service.services.registration_reader import RegistrationReader


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up",
        )
    return container


def get_intake(request: Request) -> RegistrationIntake:
    return get_container(request).intake


def get_reader(request: Request) -> RegistrationReader:
    return get_container(request).reader


def get_health(request: Request) -> HealthAggregator:
    return get_container(request).health
