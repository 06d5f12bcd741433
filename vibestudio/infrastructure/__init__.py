"""Infrastructure Layer - external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure depends on core/ only for errors, value types and protocols
    - All external calls wrapped with timeout/error mapping

Design Decisions:
    - Resilient wrappers over raw clients: retry and error mapping stay out of services
"""
