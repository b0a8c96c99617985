"""
Error taxonomy for person-store.

Every failure surfaced by the persistence layer derives from PersistenceError so
the CLI can map them to a non-zero exit code in one place. A lookup that finds no
row is not an error; `Session.find` returns None instead.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base class for all person-store failures."""


class ConfigurationError(PersistenceError):
    """
    The connection profile is unusable.

    Raised when the database cannot be reached or authenticated against after the
    configured connection attempts, or when the profile names an unsupported driver.
    Nothing has been written when this is raised.
    """


class TransactionError(PersistenceError):
    """A transaction failed and was rolled back, or could not be started."""


class QueryError(PersistenceError):
    """A statement failed outside of a transaction (lookup or schema DDL)."""


class TransactionRequiredError(PersistenceError):
    """A mutating operation was attempted outside of an active transaction."""


class InvalidEntityError(PersistenceError, ValueError):
    """The caller passed an entity (or id) the operation cannot act on."""


class SchemaValidationError(PersistenceError):
    """The database schema does not match the mapped entity."""


class ResourceClosedError(PersistenceError):
    """A session or factory was used after being closed."""


__all__ = [
    "PersistenceError",
    "ConfigurationError",
    "TransactionError",
    "TransactionRequiredError",
    "QueryError",
    "InvalidEntityError",
    "SchemaValidationError",
    "ResourceClosedError",
]
