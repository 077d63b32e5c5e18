"""Registration API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map RegistrationServiceError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - All clients opened in lifespan and released on shutdown (open_container)

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - The relay consumer runs in-process when consumer_enabled is set; the same
      consumer can run standalone via registration_service.worker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from registration_service.api.error_handlers import register_error_handlers
from registration_service.api.routes import health, registrations
from registration_service.config import get_settings
from registration_service.infrastructure.observability import setup_logging
from registration_service.services.container import open_container

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    async with open_container(
        settings, run_consumer=settings.consumer_enabled,
    ) as container:
        app.state.container = container
        logger.info(
            f"Registration API started (environment: {settings.environment})",
        )
        yield
        logger.info("Registration API shutting down")
    app.state.container = None


app = FastAPI(
    title="Registration Relay API", version="1.0.0", lifespan=lifespan,
)

# CORS origins come from settings
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(health.router)
app.include_router(registrations.router)

register_error_handlers(app)
