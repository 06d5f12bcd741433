"""Core Layer - pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Shared mutable state here (RunRegistry, RateLimiter) is guarded per operation

Design Decisions:
    - Functional core separated from imperative shell
"""
