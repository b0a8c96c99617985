"""
Session factory for person-store.

The SessionFactory is built once from a connection profile (`Settings`) and hands
out Sessions, each backed by its own psycopg connection. It owns:

- DSN composition and driver validation
- connection acquisition with retry logic for transient failures (tenacity)
- the schema-evolution policy, applied once before the first session
- cleanup of every session it produced, plus the ``create-drop`` teardown

Close it (or use it as a context manager) once the work is done.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

import psycopg
from psycopg import Connection
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from person_store.config import SUPPORTED_DRIVERS, Settings
from person_store.errors import ConfigurationError, PersistenceError, ResourceClosedError
from person_store.persistence.schema import SchemaPolicy, apply_schema, drop_table
from person_store.persistence.session import Session
from person_store.utils.logging import get_logger

log = get_logger(__name__)

ConnectFn = Callable[..., Connection]

_TRANSIENT_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError)


class SessionFactory:
    """
    Produces Sessions configured with a fixed connection profile.

    Parameters
    ----------
    settings : Settings
        The connection profile (URL or parts, driver, credentials, schema policy).
    connect : callable, optional
        Connection constructor with the `psycopg.connect` signature. Defaults to
        `psycopg.connect`; tests pass a fake.
    """

    def __init__(self, settings: Settings, connect: Optional[ConnectFn] = None) -> None:
        if settings.db_driver not in SUPPORTED_DRIVERS:
            raise ConfigurationError(
                f"Unsupported driver '{settings.db_driver}' for persistence unit "
                f"'{settings.persistence_unit}'. Supported: {', '.join(SUPPORTED_DRIVERS)}."
            )
        self._settings = settings
        self._connect = connect or psycopg.connect
        self._sessions: List[Session] = []
        self._schema_applied = False
        self._closed = False
        log.info(
            "Session factory created",
            extra={
                "persistence_unit": settings.persistence_unit,
                "dsn": settings.redacted_dsn(),
                "schema_policy": settings.schema_policy.value,
            },
        )

    # ------------------------------------------------------------------ #
    def __enter__(self) -> "SessionFactory":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # Keep the in-flight error; a teardown failure must not replace it.
        try:
            self.close()
        except PersistenceError:
            log.exception(
                "Session factory teardown failed",
                extra={"pending_error": exc_type.__name__},
            )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def open_sessions(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------ #
    def _open_connection(self) -> Connection:
        """
        Open a dedicated autocommit connection with automatic retry.

        Retries `db_connect_attempts` times with exponential backoff for transient
        connection errors.

        Raises
        ------
        ConfigurationError
            If the database stays unreachable after all attempts, or refuses the
            credentials.
        """
        settings = self._settings
        retryer = Retrying(
            stop=stop_after_attempt(settings.db_connect_attempts),
            wait=wait_exponential(multiplier=settings.db_connect_backoff_seconds, max=10),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )
        try:
            return retryer(
                self._connect,
                settings.dsn(),
                autocommit=True,
                connect_timeout=settings.db_connect_timeout,
            )
        except _TRANSIENT_ERRORS as exc:
            log.error(
                "Database unreachable",
                extra={"dsn": settings.redacted_dsn(), "attempts": settings.db_connect_attempts},
            )
            raise ConfigurationError(
                f"Cannot connect to {settings.redacted_dsn()} for persistence unit "
                f"'{settings.persistence_unit}': {exc}"
            ) from exc

    def apply_schema(self) -> None:
        """Apply the profile's schema policy on a short-lived connection."""
        if self._closed:
            raise ResourceClosedError("Session factory is closed.")
        conn = self._open_connection()
        try:
            apply_schema(conn, self._settings.schema_policy)
        finally:
            conn.close()
        self._schema_applied = True

    def create_session(self) -> Session:
        """
        Open a new Session on its own connection.

        The schema policy runs on the first call; a schema failure closes the
        connection before propagating.
        """
        if self._closed:
            raise ResourceClosedError("Session factory is closed.")

        conn = self._open_connection()
        if not self._schema_applied:
            try:
                apply_schema(conn, self._settings.schema_policy)
            except Exception:
                conn.close()
                raise
            self._schema_applied = True

        session = Session(conn, on_close=self._forget)
        self._sessions.append(session)
        log.debug("Session opened", extra={"open_sessions": len(self._sessions)})
        return session

    def _forget(self, session: Session) -> None:
        if session in self._sessions:
            self._sessions.remove(session)

    def _drop_schema(self) -> None:
        """Drop the mapped table, reusing an idle session connection when one is open."""
        for session in self._sessions:
            if session.is_open and not session.in_transaction:
                drop_table(session.connection)
                return
        conn = self._open_connection()
        try:
            drop_table(conn)
        finally:
            conn.close()

    def close(self) -> None:
        """
        Close every session still open and release the factory.

        Under the ``create-drop`` policy the mapped table is dropped first. Sessions
        are closed even when the drop fails. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        try:
            if self._settings.schema_policy is SchemaPolicy.CREATE_DROP and self._schema_applied:
                self._drop_schema()
        finally:
            for session in list(self._sessions):
                session.close()
            self._sessions.clear()
            log.info(
                "Session factory closed",
                extra={"persistence_unit": self._settings.persistence_unit},
            )


__all__ = ["SessionFactory"]
