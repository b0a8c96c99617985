"""
Utilities package for person-store.

Exports shared helpers for logging, profiling, and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from person_store.utils.logging import configure_logging, get_logger
from person_store.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
