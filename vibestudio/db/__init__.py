"""Database Infrastructure - SQLAlchemy Base for the document store tables.

Invariants:
    - Single async engine per process (initialized via init_db)
    - All sessions are async (AsyncSession)
"""
