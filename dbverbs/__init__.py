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

"""Minimal prepared-statement database client.

One connection, four verbs.  Supports SQLite (built-in), PostgreSQL
(optional, via psycopg2) and MySQL (optional, via PyMySQL).

Usage::

    from dbverbs import DatabaseClient, Param

    db = DatabaseClient(database="~/.myapp/data.db", backend="sqlite")
    new_id = db.insert("INSERT INTO papers (doi) VALUES (?)", ["s", "10.1101/x"])
    rows = db.select("SELECT * FROM papers WHERE id = ?", [Param.of(new_id)])
    db.close()
"""

from dbverbs.client import DatabaseClient, WriteResult
from dbverbs.connection import (
    connect_mysql,
    connect_postgresql,
    connect_sqlite,
    get_connector,
    list_backends,
    register_backend,
)
from dbverbs.errors import (
    BindError,
    DatabaseConnectionError,
    DatabaseError,
    ExecutionError,
    PrepareError,
    StatementError,
)
from dbverbs.params import Param, ParamKind
from dbverbs.settings import ConnectionSettings

__all__ = [
    "DatabaseClient",
    "WriteResult",
    "ConnectionSettings",
    "Param",
    "ParamKind",
    "connect_sqlite",
    "connect_postgresql",
    "connect_mysql",
    "register_backend",
    "get_connector",
    "list_backends",
    "DatabaseError",
    "DatabaseConnectionError",
    "StatementError",
    "PrepareError",
    "BindError",
    "ExecutionError",
]
