"""
person-store - a minimal object-relational persistence workflow on PostgreSQL.

A single `Person` entity is inserted, retrieved by id and deleted through a
session produced by a factory configured with a named connection profile:

- Settings: the connection profile (pydantic-settings, env / .env driven)
- SessionFactory: connection acquisition with retry, schema-evolution policy
- Session: transactional scope plus persist / find / remove
- run_workflow: the acquire, insert, retrieve, delete, release sequence
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from person_store.config import Settings, get_settings
from person_store.domain.models import Person
from person_store.errors import (
    ConfigurationError,
    InvalidEntityError,
    PersistenceError,
    QueryError,
    ResourceClosedError,
    SchemaValidationError,
    TransactionError,
    TransactionRequiredError,
)
from person_store.infrastructure.db_factory import SessionFactory
from person_store.persistence.schema import SchemaPolicy
from person_store.persistence.session import Session
from person_store.utils.logging import configure_logging, get_logger
from person_store.workflow import WorkflowOptions, WorkflowResult, run_workflow

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    "SchemaPolicy",
    # Domain
    "Person",
    # Persistence
    "Session",
    "SessionFactory",
    # Workflow
    "WorkflowOptions",
    "WorkflowResult",
    "run_workflow",
    # Errors
    "PersistenceError",
    "ConfigurationError",
    "TransactionError",
    "TransactionRequiredError",
    "QueryError",
    "InvalidEntityError",
    "SchemaValidationError",
    "ResourceClosedError",
    # Logging
    "configure_logging",
    "get_logger",
]
