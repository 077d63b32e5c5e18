"""Pydantic Schemas — record, row and cache-entry contracts.

Invariants:
    - Schemas validate at system boundaries (submissions, relay payloads, cache values)

Design Decisions:
    - Separate from models: schemas are wire contracts, models are persistence
"""
