# dbverbs — prepared-statement database client
# Copyright (C) 2024-2026 Dr Horst Herb
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Single-connection database client with four statement verbs.

Usage::

    from dbverbs import DatabaseClient

    with DatabaseClient(database="app.db", backend="sqlite") as db:
        new_id = db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        rows = db.select("SELECT id, name FROM t WHERE id = ?", ["i", new_id])
        db.update("UPDATE t SET name = ? WHERE id = ?", ["si", "Bob", new_id])
        db.remove("DELETE FROM t WHERE id = ?", ["i", new_id])

Every verb runs one statement through the same path (validate and bind the
parameters, execute, consume, close the cursor, commit) and holds the
client's lock for the whole call, so a client may be shared between
threads.  Each call is committed on its own; there are no multi-statement
transactions.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from dbverbs.connection import Connector, get_connector
from dbverbs.errors import (
    BindError,
    DatabaseConnectionError,
    DatabaseError,
    ExecutionError,
    PrepareError,
    StatementError,
)
from dbverbs.params import normalize_params
from dbverbs.settings import ConnectionSettings
from dbverbs.statements import (
    count_placeholders,
    is_sqlite,
    last_insert_id,
    placeholder,
    row_to_dict,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite reports compile failures as OperationalError; these are the
# message fragments that mean the statement never got past preparation.
_SQLITE_COMPILE_ERRORS = (
    "syntax error",
    "incomplete input",
    "unrecognized token",
    "no such table",
    "no such column",
    "no such function",
)


@dataclass(frozen=True)
class WriteResult:
    """Outcome of an UPDATE or DELETE.

    Always truthy: a failed statement raises instead of returning.

    Attributes:
        affected_rows: Rows changed, as reported by the driver's
            ``rowcount`` (``-1`` if the driver cannot tell).
    """

    affected_rows: int


def _driver_exceptions(conn: Any, *names: str) -> tuple[type[BaseException], ...]:
    """Return the DB-API exception classes a connection exposes under *names*."""
    found = []
    for name in names:
        cls = getattr(conn, name, None)
        if isinstance(cls, type) and issubclass(cls, BaseException):
            found.append(cls)
    return tuple(found)


def _connection_broken(conn: Any) -> bool:
    """Best-effort check whether the driver has marked the connection dead."""
    closed = getattr(conn, "closed", None)  # psycopg2: non-zero once closed
    if isinstance(closed, int) and closed:
        return True
    return getattr(conn, "open", None) is False  # PyMySQL


class DatabaseClient:
    """Owns one DB-API connection and runs parameterized statements on it.

    Args:
        host: Server host name.
        database: Database name (file path for SQLite).
        username: Login name.
        password: Login password.
        backend: ``"mysql"``, ``"postgresql"``, ``"sqlite"`` or any name
            added with :func:`~dbverbs.connection.register_backend`.
        port: Server port; the backend's default when omitted.
        connector: Callable opening the connection, overriding the
            backend's registered connector.

    Omitted arguments fall back to ``DBVERBS_*`` environment variables and
    then to development defaults (see :mod:`dbverbs.settings`).

    Raises:
        DatabaseConnectionError: If the connection cannot be opened.  No
            client is created in that case.
        ImportError: If the backend's optional driver is not installed.
    """

    def __init__(
        self,
        host: str | None = None,
        database: str | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        backend: str | None = None,
        port: int | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.settings = ConnectionSettings.resolve(
            host, database, username, password, backend=backend, port=port,
        )
        settings = self.settings

        if settings.is_networked and settings.uses_default_credentials:
            logger.warning(
                "Connecting to %s at %s with default credentials; "
                "these are meant for local development only",
                settings.backend, settings.host,
            )

        connect = connector or get_connector(settings.backend)
        try:
            conn = connect(settings)
        except ImportError:
            raise
        except Exception as exc:
            raise DatabaseConnectionError(
                f"Could not connect to database {settings.database!r} "
                f"({settings.backend} at {settings.host}): {exc}",
                operation="connect",
            ) from exc
        if conn is None:
            raise DatabaseConnectionError(
                f"Connector for {settings.backend!r} returned no connection",
                operation="connect",
            )

        self._connection: Any = conn
        self._lock = threading.Lock()
        self._marker = placeholder(conn)
        self._driver_error = _driver_exceptions(conn, "Error") or (Exception,)
        logger.debug(
            "Database client ready: %s/%s", settings.backend, settings.database,
        )

    # --- Lifecycle ---

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has been called."""
        return self._connection is None

    def close(self) -> None:
        """Close the connection.  Calling it again does nothing."""
        with self._lock:
            if self._connection is None:
                return
            conn, self._connection = self._connection, None
            try:
                conn.close()
            except self._driver_error as exc:
                raise DatabaseConnectionError(
                    f"Error while closing connection: {exc}", operation="close",
                ) from exc
            logger.debug("Database connection closed: %s", self.settings.database)

    def __enter__(self) -> DatabaseClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- Verbs ---

    def insert(self, query: str, params: Sequence[Any] | None = None) -> Any:
        """Insert a row and return its database-assigned identifier.

        For PostgreSQL, write ``INSERT ... RETURNING id``; the first
        returned column is used as the identifier.
        """
        return self._run("insert", query, params, last_insert_id)

    def select(
        self, query: str, params: Sequence[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return every matching row as a dict keyed by column name.

        The whole result set is fetched into memory before returning.
        """
        return self._run(
            "select", query, params,
            lambda cur: [row_to_dict(row, cur.description) for row in cur.fetchall()],
        )

    def update(self, query: str, params: Sequence[Any] | None = None) -> WriteResult:
        """Run an UPDATE and report how many rows it changed."""
        return WriteResult(self._run("update", query, params, lambda cur: cur.rowcount))

    def remove(self, query: str, params: Sequence[Any] | None = None) -> WriteResult:
        """Run a DELETE and report how many rows it removed."""
        return WriteResult(self._run("remove", query, params, lambda cur: cur.rowcount))

    # --- Internals ---

    def _run(
        self,
        operation: str,
        query: str,
        params: Sequence[Any] | None,
        consume: Callable[[Any], T],
    ) -> T:
        """Execute, extract the result with *consume*, release, commit."""
        with self._lock:
            cursor = self._execute_statement(operation, query, params)
            try:
                result = consume(cursor)
            except BaseException as exc:
                error = self._abort(cursor, exc, operation, query)
                if error is exc:
                    raise
                raise error from exc
            self._release(cursor)
            self._commit(operation, query)
        return result

    def _execute_statement(
        self, operation: str, query: str, params: Sequence[Any] | None,
    ) -> Any:
        """Prepare, bind and execute *query*, returning the open cursor.

        The caller owns the returned cursor and must close it.  On failure
        the cursor is closed and the connection rolled back before the
        error is raised.  Must be called with the lock held.
        """
        if self._connection is None:
            raise DatabaseConnectionError(
                "Database client is closed", operation=operation, query=query,
            )
        if not query or not query.strip():
            raise PrepareError(
                "Unable to prepare statement: query is empty",
                operation=operation, query=query,
            )

        try:
            values = normalize_params(params)
            expected = count_placeholders(query, self._marker)
        except BindError as exc:
            exc.operation, exc.query = operation, query
            raise
        if expected != len(values):
            raise BindError(
                f"Statement has {expected} placeholder(s) but "
                f"{len(values)} value(s) were supplied",
                operation=operation, query=query,
            )

        logger.debug("%s: %s", operation, query)
        try:
            cursor = self._connection.cursor()
        except self._driver_error as exc:
            raise self._translate(exc, operation, query) from exc
        try:
            cursor.execute(query, values)
        except BaseException as exc:
            error = self._abort(cursor, exc, operation, query)
            if error is exc:
                raise
            raise error from exc
        return cursor

    def _abort(
        self, cursor: Any, exc: BaseException, operation: str, query: str,
    ) -> BaseException:
        """Release *cursor*, roll back, and return the error to raise for *exc*."""
        self._release(cursor)
        self._rollback(operation)
        if isinstance(exc, DatabaseError):
            exc.operation = exc.operation or operation
            exc.query = exc.query or query
            return exc
        if isinstance(exc, self._driver_error):
            return self._translate(exc, operation, query)
        if isinstance(exc, Exception):
            return ExecutionError(
                f"{operation} failed: {exc}", operation=operation, query=query,
            )
        return exc

    def _translate(
        self, exc: BaseException, operation: str, query: str,
    ) -> StatementError:
        """Map a driver exception onto :class:`PrepareError` or :class:`ExecutionError`."""
        conn = self._connection
        message = str(exc).lower()
        fatal = (
            isinstance(exc, _driver_exceptions(conn, "InterfaceError"))
            or _connection_broken(conn)
            or (is_sqlite(conn) and "closed database" in message)
        )
        if fatal:
            return ExecutionError(
                f"{operation} failed, connection unusable: {exc}",
                operation=operation, query=query, fatal=True,
            )

        compile_errors = _driver_exceptions(conn, "ProgrammingError", "NotSupportedError")
        sqlite_compile = (
            is_sqlite(conn)
            and isinstance(exc, _driver_exceptions(conn, "OperationalError"))
            and any(marker in message for marker in _SQLITE_COMPILE_ERRORS)
        )
        if isinstance(exc, compile_errors) or sqlite_compile:
            return PrepareError(
                f"Unable to prepare statement: {query} ({exc})",
                operation=operation, query=query,
            )
        return ExecutionError(
            f"{operation} failed: {exc}", operation=operation, query=query,
        )

    def _commit(self, operation: str, query: str) -> None:
        try:
            self._connection.commit()
        except self._driver_error as exc:
            self._rollback(operation)
            raise self._translate(exc, operation, query) from exc

    def _rollback(self, operation: str) -> None:
        try:
            self._connection.rollback()
        except self._driver_error:
            logger.warning("Rollback after failed %s did not succeed", operation, exc_info=True)

    def _release(self, cursor: Any) -> None:
        try:
            cursor.close()
        except self._driver_error:
            logger.warning("Failed to close cursor", exc_info=True)
