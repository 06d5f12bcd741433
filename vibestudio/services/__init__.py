"""Services Layer - agent run coordination, tools, snapshots, settings.

Invariants:
    - Services talk to storage only through the core/ repository protocols
    - Tool dispatch uses explicit dict mapping (no auto-discovery)

Design Decisions:
    - One handler file per tool concern for locality (no god objects)
"""
