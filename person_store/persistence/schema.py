"""
Schema-evolution policy for the `person` table.

The policy decides what DDL, if any, runs when a SessionFactory opens its first
session:

- ``none``: leave the database alone.
- ``validate``: fail unless the table and every mapped column exist.
- ``update``: create the table if missing and add missing columns (never drops).
- ``create``: drop and recreate the table.
- ``create-drop``: like ``create``; the factory also drops the table on close.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List

import psycopg

from person_store.errors import QueryError, SchemaValidationError
from person_store.utils.logging import get_logger

log = get_logger(__name__)

PERSON_TABLE = "person"

# Column definitions used when creating the table from scratch.
PERSON_COLUMNS: Dict[str, str] = {
    "id": "SERIAL PRIMARY KEY",
    "name": "VARCHAR(255) NOT NULL",
    "email": "VARCHAR(255) NOT NULL",
}

# Columns added to an existing table; existing rows are backfilled with the default.
PERSON_ADDED_COLUMNS: Dict[str, str] = {
    "name": "VARCHAR(255) NOT NULL DEFAULT ''",
    "email": "VARCHAR(255) NOT NULL DEFAULT ''",
}

CREATE_TABLE_SQL = (
    f"CREATE TABLE IF NOT EXISTS {PERSON_TABLE} ("
    + ", ".join(f"{column} {ddl}" for column, ddl in PERSON_COLUMNS.items())
    + ");"
)
DROP_TABLE_SQL = f"DROP TABLE IF EXISTS {PERSON_TABLE};"
EXISTING_COLUMNS_SQL = (
    "SELECT column_name FROM information_schema.columns "
    "WHERE table_schema = current_schema() AND table_name = %s "
    "ORDER BY ordinal_position;"
)


class SchemaPolicy(str, Enum):
    NONE = "none"
    VALIDATE = "validate"
    UPDATE = "update"
    CREATE = "create"
    CREATE_DROP = "create-drop"


def existing_columns(conn: psycopg.Connection) -> List[str]:
    """Return the column names of the `person` table (empty when it does not exist)."""
    with conn.cursor() as cur:
        cur.execute(EXISTING_COLUMNS_SQL, (PERSON_TABLE,))
        return [row[0] for row in cur.fetchall()]


def create_table(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute(CREATE_TABLE_SQL)
    log.info("Schema table ensured", extra={"table": PERSON_TABLE})


def drop_table(conn: psycopg.Connection) -> None:
    try:
        with conn.cursor() as cur:
            cur.execute(DROP_TABLE_SQL)
    except psycopg.Error as exc:
        raise QueryError(f"Dropping table '{PERSON_TABLE}' failed: {exc}") from exc
    log.warning("Schema table dropped", extra={"table": PERSON_TABLE})


def _validate(conn: psycopg.Connection) -> None:
    columns = existing_columns(conn)
    if not columns:
        raise SchemaValidationError(f"Missing table '{PERSON_TABLE}'.")
    missing = [column for column in PERSON_COLUMNS if column not in columns]
    if missing:
        raise SchemaValidationError(
            f"Table '{PERSON_TABLE}' is missing column(s): {', '.join(missing)}."
        )


def _update(conn: psycopg.Connection) -> None:
    columns = existing_columns(conn)
    if not columns:
        create_table(conn)
        return
    if "id" not in columns:
        # A primary key cannot be retrofitted onto existing rows.
        raise SchemaValidationError(f"Table '{PERSON_TABLE}' has no 'id' column to update.")
    missing = [column for column in PERSON_ADDED_COLUMNS if column not in columns]
    with conn.cursor() as cur:
        for column in missing:
            cur.execute(
                f"ALTER TABLE {PERSON_TABLE} ADD COLUMN {column} {PERSON_ADDED_COLUMNS[column]};"
            )
            log.info("Schema column added", extra={"table": PERSON_TABLE, "column": column})


def apply_schema(conn: psycopg.Connection, policy: SchemaPolicy) -> None:
    """
    Bring the `person` table in line with the given policy.

    Parameters
    ----------
    conn : psycopg.Connection
        An open connection in autocommit mode; each DDL statement commits on its own.
    policy : SchemaPolicy
        Schema-evolution mode from the connection profile.

    Raises
    ------
    SchemaValidationError
        Under ``validate`` when the table or a column is missing, or under ``update``
        when the existing table cannot be reconciled.
    QueryError
        When the driver fails to run a schema statement.
    """
    policy = SchemaPolicy(policy)
    log.debug("Applying schema policy", extra={"policy": policy.value})
    if policy is SchemaPolicy.NONE:
        return
    try:
        if policy is SchemaPolicy.VALIDATE:
            _validate(conn)
        elif policy is SchemaPolicy.UPDATE:
            _update(conn)
        else:
            drop_table(conn)
            create_table(conn)
    except psycopg.Error as exc:
        raise QueryError(f"Schema policy '{policy.value}' failed: {exc}") from exc


__all__ = [
    "PERSON_TABLE",
    "PERSON_COLUMNS",
    "SchemaPolicy",
    "apply_schema",
    "create_table",
    "drop_table",
    "existing_columns",
]
