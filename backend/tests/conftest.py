"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach a real database, cache or broker
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/15")
os.environ.setdefault("KAFKA_BOOTSTRAP_SERVERS", "localhost:19092")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("CONSUMER_ENABLED", "false")
