"""
Persistence session for the `Person` entity.

A Session wraps one psycopg connection (opened in autocommit mode by the
SessionFactory) and exposes the unit-of-work operations the workflow needs:

- `transaction()` opens an explicit transactional scope (commit on success,
  rollback on any exception)
- `persist` inserts a transient person and returns it with its generated id
- `find` looks a person up by primary key, returning None when absent
- `remove` deletes a persisted person by id

Mutations are only accepted inside `transaction()`.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional

import psycopg
from pydantic import ValidationError

from person_store.domain.models import Person
from person_store.errors import (
    InvalidEntityError,
    QueryError,
    ResourceClosedError,
    SchemaValidationError,
    TransactionError,
    TransactionRequiredError,
)
from person_store.persistence.schema import PERSON_TABLE
from person_store.utils.logging import get_logger

log = get_logger(__name__)

INSERT_SQL = f"INSERT INTO {PERSON_TABLE} (name, email) VALUES (%s, %s) RETURNING id;"
SELECT_BY_ID_SQL = f"SELECT id, name, email FROM {PERSON_TABLE} WHERE id = %s;"
DELETE_BY_ID_SQL = f"DELETE FROM {PERSON_TABLE} WHERE id = %s;"


def _require_persisted(person: Any) -> int:
    """Return the id of a persisted person or fail before touching the database."""
    if person is None:
        raise InvalidEntityError("Cannot remove a person that was not found (got None).")
    if not isinstance(person, Person):
        raise InvalidEntityError(f"Expected a Person instance, got {type(person).__name__}.")
    if person.id is None:
        raise InvalidEntityError("Cannot remove a transient person; it has no id yet.")
    return person.id


class Session:
    """
    Unit-of-work handle over a single database connection.

    Use as a context manager so the connection is released on every exit path:

        with factory.create_session() as session:
            with session.transaction():
                saved = session.persist(Person(name="A", email="a@x.com"))
            print(session.find(saved.id))
    """

    def __init__(
        self,
        connection: psycopg.Connection,
        on_close: Optional[Callable[["Session"], None]] = None,
    ) -> None:
        self._connection = connection
        self._on_close = on_close
        self._in_transaction = False
        self._closed = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def connection(self) -> psycopg.Connection:
        self._ensure_open()
        return self._connection

    def close(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._connection.close()
        finally:
            if self._on_close is not None:
                self._on_close(self)
        log.debug("Session closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise ResourceClosedError("Session is closed.")

    def _ensure_transaction(self, operation: str) -> None:
        if not self._in_transaction:
            raise TransactionRequiredError(f"'{operation}' requires an active transaction.")

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    @contextmanager
    def transaction(self) -> Generator["Session", None, None]:
        """
        Run the enclosed block in a single transaction.

        Commits when the block completes and rolls back when it raises. Driver
        errors (including a failed commit) surface as TransactionError; any other
        exception propagates unchanged once the rollback is done.
        """
        self._ensure_open()
        if self._in_transaction:
            raise TransactionError("A transaction is already active on this session.")

        self._in_transaction = True
        try:
            with self._connection.transaction():
                yield self
        except psycopg.Error as exc:
            log.warning("Transaction rolled back", extra={"error": str(exc)})
            raise TransactionError(f"Transaction rolled back: {exc}") from exc
        except Exception:
            log.warning("Transaction rolled back after caller error")
            raise
        finally:
            self._in_transaction = False

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #
    def persist(self, person: Person) -> Person:
        """
        Insert a transient person and return the copy carrying its generated id.

        Raises
        ------
        InvalidEntityError
            If the person already has an id.
        TransactionRequiredError
            If called outside `transaction()`.
        """
        self._ensure_open()
        if not isinstance(person, Person):
            raise InvalidEntityError(f"Expected a Person instance, got {type(person).__name__}.")
        if person.is_persisted:
            raise InvalidEntityError(f"Person id={person.id} is already persisted.")
        self._ensure_transaction("persist")

        with self._connection.cursor() as cur:
            cur.execute(INSERT_SQL, (person.name, person.email))
            row = cur.fetchone()
        if row is None:
            raise TransactionError("INSERT did not return a generated id.")

        saved = person.with_id(row[0])
        log.debug("Person persisted", extra={"person_id": saved.id})
        return saved

    def find(self, person_id: int) -> Optional[Person]:
        """
        Look a person up by primary key.

        Returns None when no row matches; absence is not an error.

        Raises
        ------
        QueryError
            If the driver fails to run the lookup (e.g. the table is missing).
        SchemaValidationError
            If the stored row cannot be mapped onto Person (e.g. a NULL name).
        """
        self._ensure_open()
        if isinstance(person_id, bool) or not isinstance(person_id, int):
            raise InvalidEntityError(f"Person id must be an integer, got {person_id!r}.")

        try:
            with self._connection.cursor() as cur:
                cur.execute(SELECT_BY_ID_SQL, (person_id,))
                row = cur.fetchone()
        except psycopg.Error as exc:
            raise QueryError(f"Lookup of person id={person_id} failed: {exc}") from exc
        if row is None:
            log.debug("Person not found", extra={"person_id": person_id})
            return None
        try:
            return Person(id=row[0], name=row[1], email=row[2])
        except ValidationError as exc:
            raise SchemaValidationError(
                f"Row id={person_id} does not map onto Person: {exc.error_count()} invalid field(s)."
            ) from exc

    def remove(self, person: Optional[Person]) -> bool:
        """
        Delete a persisted person.

        The argument is validated before any SQL runs, so passing a not-found
        result (None) or a transient person fails fast without mutating anything.

        Returns
        -------
        bool
            True when a row was deleted, False when it was already gone.
        """
        self._ensure_open()
        person_id = _require_persisted(person)
        self._ensure_transaction("remove")

        with self._connection.cursor() as cur:
            cur.execute(DELETE_BY_ID_SQL, (person_id,))
            removed = cur.rowcount > 0
        log.debug("Person removed", extra={"person_id": person_id, "removed": removed})
        return removed


__all__ = ["Session", "INSERT_SQL", "SELECT_BY_ID_SQL", "DELETE_BY_ID_SQL"]
