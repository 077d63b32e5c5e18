"""Core Layer — pure domain logic, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Validation, envelope codec and health aggregation are pure and deterministic

Design Decisions:
    - Functional core separated from imperative shell: services/ orchestrate IO
      around these functions
"""
