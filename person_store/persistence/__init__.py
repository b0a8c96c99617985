"""
Persistence package for person-store.

Holds the session (unit of work over one connection) and the schema-evolution
policy for the mapped table. Connection acquisition lives in
`person_store.infrastructure`.
"""

from person_store.persistence.schema import SchemaPolicy, apply_schema
from person_store.persistence.session import Session

__all__ = [
    "SchemaPolicy",
    "Session",
    "apply_schema",
]
