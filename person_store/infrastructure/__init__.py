"""
Infrastructure package for person-store.

Centralizes database connectivity concerns (connection acquisition, retry,
schema bootstrap). Keep this layer focused on I/O and resource management,
decoupled from the workflow logic.
"""

from person_store.infrastructure.db_factory import SessionFactory

__all__ = [
    "SessionFactory",
]
