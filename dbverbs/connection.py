"""Database connection factories and the backend registry.

Each ``connect_*`` function returns a standard DB-API 2.0 connection.
SQLite uses the built-in ``sqlite3`` module; PostgreSQL uses ``psycopg2``
and MySQL uses ``PyMySQL`` (both optional dependencies).

A *connector* is any callable that takes a
:class:`~dbverbs.settings.ConnectionSettings` and returns an open DB-API
connection.  :class:`~dbverbs.client.DatabaseClient` looks its connector up
by backend name; new backends can be added with :func:`register_backend`.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

from dbverbs.settings import ConnectionSettings

logger = logging.getLogger(__name__)

Connector = Callable[[ConnectionSettings], Any]


def connect_sqlite(
    path: str | Path,
    *,
    wal_mode: bool = True,
    foreign_keys: bool = True,
) -> sqlite3.Connection:
    """Open (or create) a SQLite database and return a connection.

    Args:
        path: File path (``":memory:"`` for in-memory).
        wal_mode: Enable WAL journal mode for better concurrent access.
        foreign_keys: Enforce foreign key constraints.
    """
    path = str(Path(path).expanduser()) if path != ":memory:" else ":memory:"

    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    # Access is serialised by the owning client, not by sqlite3.
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    if wal_mode and path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    if foreign_keys:
        conn.execute("PRAGMA foreign_keys=ON")

    logger.debug("SQLite connection opened: %s", path)
    return conn


def connect_postgresql(
    dsn: str | None = None,
    *,
    host: str = "localhost",
    port: int = 5432,
    database: str = "databaseName",
    user: str = "userName",
    password: str = "",
) -> Any:
    """Open a PostgreSQL connection via psycopg2.

    Either provide a full *dsn* string, or individual parameters.

    Returns:
        A ``psycopg2`` connection with ``RealDictCursor`` as the default
        cursor factory.
    """
    try:
        import psycopg2
        import psycopg2.extras
    except ImportError:
        raise ImportError(
            "psycopg2 not installed. Install with: pip install dbverbs[postgresql]"
        )

    if dsn:
        conn = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
    else:
        conn = psycopg2.connect(
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            cursor_factory=psycopg2.extras.RealDictCursor,
        )

    logger.debug("PostgreSQL connection opened: %s:%s/%s", host, port, database)
    return conn


def connect_mysql(
    *,
    host: str = "localhost",
    port: int = 3306,
    database: str = "databaseName",
    user: str = "userName",
    password: str = "",
) -> Any:
    """Open a MySQL / MariaDB connection via PyMySQL.

    Autocommit is left off; the client commits after each statement.

    Returns:
        A ``pymysql`` connection using ``DictCursor`` and ``utf8mb4``.
    """
    try:
        import pymysql
        import pymysql.cursors
    except ImportError:
        raise ImportError(
            "PyMySQL not installed. Install with: pip install dbverbs[mysql]"
        )

    conn = pymysql.connect(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password,
        charset="utf8mb4",
        autocommit=False,
        cursorclass=pymysql.cursors.DictCursor,
    )

    logger.debug("MySQL connection opened: %s:%s/%s", host, port, database)
    return conn


# ---------------------------------------------------------------------------
# Backend registry
# ---------------------------------------------------------------------------


def _sqlite_connector(settings: ConnectionSettings) -> sqlite3.Connection:
    return connect_sqlite(settings.database)


def _postgresql_connector(settings: ConnectionSettings) -> Any:
    return connect_postgresql(
        host=settings.host,
        port=settings.port or 5432,
        database=settings.database,
        user=settings.username,
        password=settings.password,
    )


def _mysql_connector(settings: ConnectionSettings) -> Any:
    return connect_mysql(
        host=settings.host,
        port=settings.port or 3306,
        database=settings.database,
        user=settings.username,
        password=settings.password,
    )


# Registry: backend name -> connector
_REGISTRY: dict[str, Connector] = {
    "sqlite": _sqlite_connector,
    "postgresql": _postgresql_connector,
    "mysql": _mysql_connector,
}


def register_backend(name: str, connector: Connector) -> None:
    """Register a connector under a backend *name*."""
    _REGISTRY[name.lower()] = connector


def list_backends() -> list[str]:
    """Return names of all registered backends."""
    return list(_REGISTRY.keys())


def get_connector(name: str) -> Connector:
    """Return the connector for a backend.

    Raises :class:`ValueError` if the backend is not registered.
    """
    connector = _REGISTRY.get(name.lower())
    if connector is None:
        raise ValueError(
            f"Unknown backend {name!r}. Available: {sorted(_REGISTRY.keys())}"
        )
    return connector
