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

"""Exception hierarchy for database access.

Connection-level failures and per-statement failures are separate types so
callers can tell "tear down and reconnect" apart from "this query was
bad"::

    DatabaseError
    ├── DatabaseConnectionError      (fatal)
    └── StatementError
        ├── PrepareError
        │   └── BindError
        └── ExecutionError           (fatal if the connection broke)

Every error records the verb (``operation``) and the SQL (``query``) it was
raised for.  The driver exception, when there is one, is chained as
``__cause__``.
"""

from __future__ import annotations


class DatabaseError(Exception):
    """Base class for all dbverbs errors."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        query: str | None = None,
        fatal: bool = False,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.query = query
        self.fatal = fatal


class DatabaseConnectionError(DatabaseError):
    """The connection could not be opened, or the client is closed."""

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("fatal", True)
        super().__init__(message, **kwargs)


class StatementError(DatabaseError):
    """A single statement failed; the connection is still usable."""


class PrepareError(StatementError):
    """The statement could not be compiled by the database."""


class BindError(PrepareError):
    """Parameters do not match the statement's placeholders or type tags."""


class ExecutionError(StatementError):
    """The database rejected execution of a prepared, bound statement."""
