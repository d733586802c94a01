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

"""Helpers around a single DB-API statement.

Everything here is backend-neutral: the backend is detected from the
connection's module (``sqlite3`` vs. anything else) the same way for
placeholder style, and result rows are normalised to plain dicts whatever
row type the driver hands back.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from dbverbs.errors import BindError, ExecutionError


def is_sqlite(conn: Any) -> bool:
    """Return True if the connection is SQLite."""
    return "sqlite3" in type(conn).__module__


def placeholder(conn: Any) -> str:
    """Return the positional parameter placeholder for this connection."""
    return "?" if is_sqlite(conn) else "%s"


def _skip_quoted(sql: str, start: int, quote: str) -> int:
    """Return the index just past the quoted section opening at *start*."""
    i = start + 1
    n = len(sql)
    while i < n:
        if sql[i] == quote:
            # A doubled quote is an escaped quote inside the literal.
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def _count_qmarks(sql: str) -> int:
    count = 0
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"', "`"):
            i = _skip_quoted(sql, i, ch)
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end + 1
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif ch == "?":
            count += 1
            i += 1
        else:
            i += 1
    return count


def _count_format_markers(sql: str) -> int:
    # psycopg2 and PyMySQL %-format the whole statement text, literals and
    # comments included, so every % must be either %s or %%.
    count = 0
    i = 0
    n = len(sql)
    while i < n:
        i = sql.find("%", i)
        if i == -1:
            break
        nxt = sql[i + 1:i + 2]
        if nxt == "s":
            count += 1
        elif nxt != "%":
            raise BindError(
                f"Unescaped '%' at position {i}; write '%%' for a literal "
                "percent sign in statements using %s placeholders"
            )
        i += 2
    return count


def count_placeholders(sql: str, marker: str = "?") -> int:
    """Count positional placeholders in *sql*.

    With the ``?`` marker (SQLite), markers inside string literals, quoted
    identifiers and comments are ignored.  With the ``%s`` marker the whole
    text is counted the way the driver formats it: ``%%`` is a literal
    percent sign and any other ``%`` raises :class:`BindError`.

    Args:
        sql: The statement text.
        marker: ``"?"`` (SQLite) or ``"%s"`` (PostgreSQL, MySQL).
    """
    if marker == "%s":
        return _count_format_markers(sql)
    return _count_qmarks(sql)


def row_to_dict(row: Any, description: Sequence[Sequence[Any]] | None) -> dict[str, Any]:
    """Convert a result row into a dict keyed by column name.

    Handles mapping rows (psycopg2 ``RealDictCursor``, PyMySQL
    ``DictCursor``), ``sqlite3.Row`` and plain tuples.  Column order follows
    the query's projection; for duplicate names the last column wins.
    """
    if isinstance(row, Mapping):
        return dict(row)
    keys = getattr(row, "keys", None)
    if callable(keys):
        return dict(zip(keys(), row, strict=True))
    names = [col[0] for col in description or ()]
    return dict(zip(names, row, strict=True))


def last_insert_id(cursor: Any) -> Any:
    """Return the identifier of the row just inserted through *cursor*.

    If the statement produced rows (``INSERT ... RETURNING id``), the first
    column of the first row is used; otherwise the cursor's ``lastrowid``.

    Raises :class:`ExecutionError` for PostgreSQL without ``RETURNING``,
    where ``lastrowid`` is an OID rather than the row's key.
    """
    if cursor.description:
        row = cursor.fetchone()
        if row is not None:
            if isinstance(row, Mapping):
                return next(iter(row.values()), None)
            # sqlite3.Row and tuples both support index access.
            return row[0]
    if "psycopg" in type(cursor).__module__:
        raise ExecutionError(
            "PostgreSQL does not report the inserted key; "
            "add 'RETURNING <key column>' to the INSERT"
        )
    return cursor.lastrowid
