"""
Domain package for person-store.

Exports the entity mapped by the persistence layer. Keep this package focused on
data definitions and validation concerns.
"""

from person_store.domain.models import Person

__all__ = [
    "Person",
]
