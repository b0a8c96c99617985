"""
Pytest configuration for person-store.

Provides fixtures for:
- Settings override for unit and integration tests
- An in-memory stand-in for a psycopg connection (unit tests)
- Real database connection management (integration tests)
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

import psycopg
import pytest

from person_store.config import Settings
from person_store.persistence.schema import PERSON_COLUMNS, SchemaPolicy, apply_schema

MAX_VARCHAR = 255


class FakeCursor:
    """Cursor over a FakeDatabase; supports the calls the persistence layer makes."""

    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._rows: List[Tuple[Any, ...]] = []
        self.rowcount = -1

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def execute(self, sql: str, params: Optional[Tuple[Any, ...]] = None) -> None:
        self._rows, self.rowcount = self._conn.db.execute(sql, params or ())

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> List[Tuple[Any, ...]]:
        rows, self._rows = self._rows, []
        return rows


class FakeConnection:
    """Autocommit connection whose `transaction()` snapshots and restores table rows."""

    def __init__(self, db: "FakeDatabase", conninfo: str, kwargs: Dict[str, Any]) -> None:
        self.db = db
        self.conninfo = conninfo
        self.kwargs = kwargs
        self.closed = False

    def cursor(self) -> FakeCursor:
        if self.closed:
            raise psycopg.OperationalError("the connection is closed")
        return FakeCursor(self)

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        if self.closed:
            raise psycopg.OperationalError("the connection is closed")
        snapshot = (dict(self.db.rows), list(self.db.columns) if self.db.columns else None)
        self.db.statements.append("BEGIN")
        try:
            yield
            if self.db.fail_commit:
                raise psycopg.OperationalError("server closed the connection unexpectedly")
        except BaseException:
            self.db.rows, self.db.columns = snapshot
            self.db.statements.append("ROLLBACK")
            raise
        self.db.statements.append("COMMIT")

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """
    In-memory `person` table that understands the statements person-store issues.

    Ids come from a sequence that, like a PostgreSQL SERIAL, is not rolled back.
    """

    def __init__(
        self,
        with_table: bool = True,
        failing_connects: int = 0,
        max_connections: Optional[int] = None,
    ) -> None:
        self.columns: Optional[List[str]] = list(PERSON_COLUMNS) if with_table else None
        self.rows: Dict[int, Tuple[Optional[str], Optional[str]]] = {}
        self.next_id = 1
        self.statements: List[str] = []
        self.connections: List[FakeConnection] = []
        self.connect_calls = 0
        self.failing_connects = failing_connects
        self.max_connections = max_connections
        self.fail_commit = False

    # ------------------------------------------------------------------ #
    def connect(self, conninfo: str, **kwargs: Any) -> FakeConnection:
        self.connect_calls += 1
        if self.failing_connects > 0:
            self.failing_connects -= 1
            raise psycopg.OperationalError("connection refused")
        if self.max_connections is not None and len(self.connections) >= self.max_connections:
            raise psycopg.OperationalError("server closed the connection unexpectedly")
        conn = FakeConnection(self, conninfo, kwargs)
        self.connections.append(conn)
        return conn

    def seed(self, name: str, email: str) -> int:
        person_id = self.next_id
        self.next_id += 1
        self.rows[person_id] = (name, email)
        return person_id

    @property
    def mutations(self) -> List[str]:
        return [s for s in self.statements if s.startswith(("INSERT", "DELETE", "UPDATE"))]

    # ------------------------------------------------------------------ #
    def execute(self, sql: str, params: Tuple[Any, ...]) -> Tuple[List[Tuple[Any, ...]], int]:
        statement = " ".join(sql.split())
        self.statements.append(statement)

        if statement.startswith("SELECT column_name FROM information_schema.columns"):
            return [(column,) for column in self.columns or []], len(self.columns or [])
        if statement.startswith("CREATE TABLE IF NOT EXISTS person"):
            if self.columns is None:
                self.columns = list(PERSON_COLUMNS)
            return [], 0
        if statement.startswith("DROP TABLE IF EXISTS person"):
            self.columns = None
            self.rows = {}
            return [], 0

        if self.columns is None:
            raise psycopg.ProgrammingError('relation "person" does not exist')

        if statement.startswith("ALTER TABLE person ADD COLUMN"):
            self.columns.append(statement.split()[5])
            return [], 0
        if statement.startswith("INSERT INTO person"):
            name, email = params
            if name is None or email is None:
                raise psycopg.IntegrityError("null value violates not-null constraint")
            if len(name) > MAX_VARCHAR or len(email) > MAX_VARCHAR:
                raise psycopg.DataError("value too long for type character varying(255)")
            return [(self.seed(name, email),)], 1
        if statement.startswith("SELECT id, name, email FROM person WHERE id ="):
            (person_id,) = params
            row = self.rows.get(person_id)
            return ([(person_id, *row)] if row else []), (1 if row else 0)
        if statement.startswith("DELETE FROM person WHERE id ="):
            (person_id,) = params
            removed = self.rows.pop(person_id, None) is not None
            return [], int(removed)

        raise AssertionError(f"Unexpected SQL: {statement}")


# ---------------------------------------------------------------------- #
# Unit-test fixtures
# ---------------------------------------------------------------------- #
@pytest.fixture
def fake_db() -> FakeDatabase:
    """An in-memory database with the `person` table already created."""
    return FakeDatabase()


@pytest.fixture
def empty_fake_db() -> FakeDatabase:
    """An in-memory database without the `person` table."""
    return FakeDatabase(with_table=False)


@pytest.fixture
def settings() -> Settings:
    """
    Settings fixture isolated from the environment's `.env` file.

    Backoff is zeroed so retry tests do not sleep.
    """
    return Settings(
        _env_file=None,
        persistence_unit="person-jpa",
        db_driver="postgresql",
        db_url=None,
        db_host="db.test",
        db_port=5432,
        db_user="postgres",
        db_password="postgres",
        db_name="person_store_test",
        db_connect_timeout=5,
        db_connect_attempts=3,
        db_connect_backoff_seconds=0,
        schema_policy=SchemaPolicy.UPDATE,
        sample_name="João Bruno",
        sample_email="joao@gmail.com",
        log_level="DEBUG",
    )


# ---------------------------------------------------------------------- #
# Integration fixtures
# ---------------------------------------------------------------------- #
@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings for integration tests against a real PostgreSQL.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        _env_file=None,
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "person_store"),
        db_connect_attempts=1,
        schema_policy=SchemaPolicy.UPDATE,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def db_connection_available(test_settings: Settings) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_settings.dsn(), connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_settings: Settings, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_settings.dsn(), autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def clean_person_table(db_connection: psycopg.Connection) -> Generator[None, None, None]:
    """
    Ensure the `person` table exists and is empty before and after each test.
    """
    apply_schema(db_connection, SchemaPolicy.UPDATE)
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE person RESTART IDENTITY;")
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE person RESTART IDENTITY;")
