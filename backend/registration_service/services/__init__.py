"""Services Layer — intake, persistence, reads, relay consumer and health.

Invariants:
    - Services depend on core Protocols, never on concrete clients
    - Wiring happens in one place (container.py)

Design Decisions:
    - One file per pipeline component for locality
"""
