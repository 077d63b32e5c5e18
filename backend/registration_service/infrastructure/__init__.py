"""Infrastructure Layer — clients for the three external stores and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/ or api/
    - Every client error is mapped to the core error taxonomy before it leaves this layer

Design Decisions:
    - Thin resilient wrappers over raw clients (redis.asyncio, aiokafka, SQLAlchemy)
"""
