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

"""Tests for dbverbs.client — the four verbs, binding, errors, lifecycle."""

from __future__ import annotations

import logging
import sqlite3
import threading

import pytest

from dbverbs import (
    BindError,
    DatabaseClient,
    DatabaseConnectionError,
    ExecutionError,
    Param,
    ParamKind,
    PrepareError,
    StatementError,
    WriteResult,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "DBVERBS_BACKEND", "DBVERBS_HOST", "DBVERBS_PORT",
        "DBVERBS_DATABASE", "DBVERBS_USER", "DBVERBS_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)


def _mem_client():
    return DatabaseClient(database=":memory:", backend="sqlite")


def _client_with_table():
    db = _mem_client()
    db.update(
        "CREATE TABLE t ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name TEXT NOT NULL UNIQUE, "
        "score REAL, "
        "avatar BLOB)"
    )
    return db


# ---------------------------------------------------------------------------
# A tiny DB-API stand-in for driver behaviour SQLite cannot produce
# ---------------------------------------------------------------------------


class _FakeError(Exception):
    pass


class _FakeInterfaceError(_FakeError):
    pass


class _FakeIntegrityError(_FakeError):
    pass


class _FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.closed = False
        self.description = None
        self.rowcount = -1
        self.lastrowid = None

    def execute(self, sql, params=()):
        self.conn.executed.append((sql, params))
        if self.conn.fail_with is not None:
            raise self.conn.fail_with

    def close(self):
        self.closed = True


class _PostgresLikeCursor(_FakeCursor):
    __module__ = "psycopg2.extensions"

    def __init__(self, conn):
        super().__init__(conn)
        self.lastrowid = 0


class _FakeConnection:
    Error = _FakeError
    InterfaceError = _FakeInterfaceError
    IntegrityError = _FakeIntegrityError

    def __init__(self, fail_with=None, cursor_class=_FakeCursor):
        self.fail_with = fail_with
        self.cursor_class = cursor_class
        self.executed = []
        self.cursors = []
        self.commits = 0
        self.rollbacks = 0

    def cursor(self):
        cur = self.cursor_class(self)
        self.cursors.append(cur)
        return cur

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        pass


def _fake_client(conn):
    return DatabaseClient(
        username="app", password="secret", backend="fake",
        connector=lambda settings: conn,
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_sqlite_memory(self):
        db = _mem_client()
        assert not db.closed
        assert db.settings.backend == "sqlite"
        db.close()

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("DBVERBS_BACKEND", "sqlite")
        monkeypatch.setenv("DBVERBS_DATABASE", ":memory:")
        db = DatabaseClient()
        assert db.settings.backend == "sqlite"
        assert db.select("SELECT 1 AS one") == [{"one": 1}]
        db.close()

    def test_unopenable_sqlite_path(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        with pytest.raises(DatabaseConnectionError) as exc_info:
            DatabaseClient(database=str(blocker / "db.sqlite"), backend="sqlite")
        assert exc_info.value.fatal
        assert exc_info.value.operation == "connect"

    def test_driver_failure_is_wrapped(self):
        def refuse(settings):
            raise RuntimeError("Access denied for user")

        with pytest.raises(DatabaseConnectionError, match="Access denied") as exc_info:
            DatabaseClient(username="bad", password="wrong", connector=refuse)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_connector_returning_nothing(self):
        with pytest.raises(DatabaseConnectionError):
            DatabaseClient(backend="sqlite", connector=lambda settings: None)

    def test_missing_driver_propagates_import_error(self):
        def no_driver(settings):
            raise ImportError("PyMySQL not installed")

        with pytest.raises(ImportError):
            DatabaseClient(connector=no_driver)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            DatabaseClient(backend="oracle")

    def test_default_credentials_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dbverbs.client"):
            db = DatabaseClient(
                backend="mysql",
                connector=lambda settings: sqlite3.connect(":memory:"),
            )
        assert "default credentials" in caplog.text
        db.close()

    def test_sqlite_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dbverbs.client"):
            _mem_client().close()
        assert "default credentials" not in caplog.text


# ---------------------------------------------------------------------------
# Verbs
# ---------------------------------------------------------------------------


class TestInsert:
    def test_returns_first_id(self):
        db = _client_with_table()
        assert db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"]) == 1

    def test_ids_increase(self):
        db = _client_with_table()
        ids = [
            db.insert("INSERT INTO t (name) VALUES (?)", ["s", f"user{i}"])
            for i in range(5)
        ]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_explicit_params(self):
        db = _client_with_table()
        new_id = db.insert(
            "INSERT INTO t (name, score, avatar) VALUES (?, ?, ?)",
            [Param.of("Alice"), Param(ParamKind.DOUBLE, 3), Param.of(b"\x89PNG")],
        )
        rows = db.select("SELECT score, avatar FROM t WHERE id = ?", ["i", new_id])
        assert rows == [{"score": 3.0, "avatar": b"\x89PNG"}]

    def test_constraint_violation(self):
        db = _client_with_table()
        db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        with pytest.raises(ExecutionError) as exc_info:
            db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        assert not exc_info.value.fatal
        assert exc_info.value.operation == "insert"
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)

    def test_usable_after_failure(self):
        db = _client_with_table()
        db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        with pytest.raises(ExecutionError):
            db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        assert db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Bob"]) == 2


class TestSelect:
    def test_row_as_mapping(self):
        db = _client_with_table()
        db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        rows = db.select("SELECT id, name FROM t WHERE id = ?", ["i", 1])
        assert rows == [{"id": 1, "name": "Alice"}]

    def test_projection_order(self):
        db = _client_with_table()
        db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        rows = db.select("SELECT name, id FROM t")
        assert list(rows[0].keys()) == ["name", "id"]

    def test_empty_result(self):
        db = _client_with_table()
        assert db.select("SELECT * FROM t WHERE id = ?", ["i", 42]) == []

    def test_all_rows_materialised(self):
        db = _client_with_table()
        for name in ("a", "b", "c"):
            db.insert("INSERT INTO t (name) VALUES (?)", ["s", name])
        rows = db.select("SELECT name FROM t ORDER BY name")
        assert [r["name"] for r in rows] == ["a", "b", "c"]

    def test_malformed_sql(self):
        db = _client_with_table()
        with pytest.raises(PrepareError, match="Unable to prepare statement") as exc_info:
            db.select("SELEKT * FROM t")
        assert exc_info.value.query == "SELEKT * FROM t"
        assert exc_info.value.operation == "select"

    def test_unknown_table(self):
        db = _mem_client()
        with pytest.raises(PrepareError):
            db.select("SELECT * FROM missing")

    def test_empty_query(self):
        db = _mem_client()
        with pytest.raises(PrepareError):
            db.select("   ")


class TestUpdateAndRemove:
    def test_update_then_select(self):
        db = _client_with_table()
        db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        result = db.update("UPDATE t SET name = ? WHERE id = ?", ["si", "Bob", 1])
        assert result == WriteResult(affected_rows=1)
        assert result
        rows = db.select("SELECT id, name FROM t WHERE id = ?", ["i", 1])
        assert rows == [{"id": 1, "name": "Bob"}]

    def test_update_no_match_is_still_success(self):
        db = _client_with_table()
        result = db.update("UPDATE t SET name = ? WHERE id = ?", ["si", "Bob", 99])
        assert result.affected_rows == 0
        assert result

    def test_remove(self):
        db = _client_with_table()
        for name in ("a", "b", "c"):
            db.insert("INSERT INTO t (name) VALUES (?)", ["s", name])
        result = db.remove("DELETE FROM t WHERE name <> ?", ["s", "b"])
        assert result.affected_rows == 2
        assert db.select("SELECT name FROM t") == [{"name": "b"}]

    def test_remove_malformed(self):
        db = _client_with_table()
        with pytest.raises(StatementError):
            db.remove("DELETE FORM t")


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------


class TestBinding:
    def test_too_many_values(self):
        db = _client_with_table()
        with pytest.raises(BindError, match="1 placeholder"):
            db.select("SELECT * FROM t WHERE id = ?", ["ii", 1, 2])

    def test_too_few_values(self):
        db = _client_with_table()
        with pytest.raises(BindError) as exc_info:
            db.update("UPDATE t SET name = ? WHERE id = ?", ["s", "Bob"])
        assert exc_info.value.operation == "update"

    def test_bind_error_is_prepare_error(self):
        db = _client_with_table()
        with pytest.raises(PrepareError):
            db.select("SELECT * FROM t WHERE id = ?")

    def test_tag_count_mismatch(self):
        db = _client_with_table()
        with pytest.raises(BindError, match="describe 2"):
            db.select("SELECT * FROM t WHERE id = ?", ["ii", 1])

    def test_wrong_value_kind(self):
        db = _client_with_table()
        with pytest.raises(BindError):
            db.select("SELECT * FROM t WHERE id = ?", ["i", "one"])

    def test_marker_inside_literal_ignored(self):
        db = _client_with_table()
        db.insert("INSERT INTO t (name) VALUES (?)", ["s", "Alice"])
        rows = db.select(
            "SELECT id FROM t WHERE name = ? AND 'why?' = 'why?' -- really?",
            ["s", "Alice"],
        )
        assert rows == [{"id": 1}]

    def test_null_value(self):
        db = _client_with_table()
        new_id = db.insert(
            "INSERT INTO t (name, score) VALUES (?, ?)", ["sd", "Alice", None],
        )
        assert db.select("SELECT score FROM t WHERE id = ?", ["i", new_id]) == [{"score": None}]


# ---------------------------------------------------------------------------
# Lifecycle and resources
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_close_is_idempotent(self):
        db = _mem_client()
        db.close()
        db.close()
        assert db.closed

    def test_calls_after_close_fail(self):
        db = _mem_client()
        db.close()
        with pytest.raises(DatabaseConnectionError) as exc_info:
            db.select("SELECT 1")
        assert exc_info.value.fatal

    def test_context_manager(self):
        with _mem_client() as db:
            assert db.select("SELECT 1 AS one") == [{"one": 1}]
        assert db.closed

    def test_underlying_connection_closed(self):
        db = _mem_client()
        db._connection.close()
        with pytest.raises(ExecutionError) as exc_info:
            db.select("SELECT 1")
        assert exc_info.value.fatal

    def test_shared_between_threads(self):
        db = _client_with_table()
        errors = []

        def worker(n):
            try:
                for i in range(20):
                    db.insert("INSERT INTO t (name) VALUES (?)", ["s", f"w{n}-{i}"])
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert errors == []
        assert db.select("SELECT COUNT(*) AS n FROM t") == [{"n": 80}]


class TestDriverErrors:
    def test_cursor_released_and_rolled_back(self):
        conn = _FakeConnection(fail_with=_FakeIntegrityError("duplicate key"))
        db = _fake_client(conn)
        with pytest.raises(ExecutionError, match="duplicate key") as exc_info:
            db.update("UPDATE t SET a = %s", ["i", 1])
        assert not exc_info.value.fatal
        assert conn.cursors[-1].closed
        assert conn.rollbacks == 1
        assert conn.commits == 0

    def test_interface_error_is_fatal(self):
        conn = _FakeConnection(fail_with=_FakeInterfaceError("connection already closed"))
        db = _fake_client(conn)
        with pytest.raises(ExecutionError) as exc_info:
            db.select("SELECT 1")
        assert exc_info.value.fatal

    def test_percent_placeholders(self):
        conn = _FakeConnection()
        db = _fake_client(conn)
        result = db.update(
            "UPDATE t SET a = %s WHERE b LIKE 'x%%'", [Param.of(5)],
        )
        assert result.affected_rows == -1
        assert conn.executed == [("UPDATE t SET a = %s WHERE b LIKE 'x%%'", (5,))]
        assert conn.cursors[-1].closed
        assert conn.commits == 1

    def test_question_mark_not_counted_for_percent_style(self):
        conn = _FakeConnection()
        db = _fake_client(conn)
        with pytest.raises(BindError):
            db.select("SELECT * FROM t WHERE a = ?", ["i", 1])
        assert conn.executed == []

    def test_unescaped_percent_rejected_before_driver(self):
        conn = _FakeConnection()
        db = _fake_client(conn)
        with pytest.raises(BindError, match="%%") as exc_info:
            db.select("SELECT * FROM t WHERE name LIKE 'a%' AND id = %s", [Param.of(1)])
        assert exc_info.value.operation == "select"
        assert conn.executed == []
        assert conn.cursors == []

    def test_non_driver_error_releases_and_rolls_back(self):
        conn = _FakeConnection(fail_with=ValueError("unsupported format character"))
        db = _fake_client(conn)
        with pytest.raises(ExecutionError, match="unsupported format") as exc_info:
            db.select("SELECT * FROM t WHERE id = %s", [Param.of(1)])
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert exc_info.value.query == "SELECT * FROM t WHERE id = %s"
        assert conn.cursors[-1].closed
        assert conn.rollbacks == 1
        assert conn.commits == 0

    def test_error_while_consuming_releases_and_rolls_back(self):
        conn = _FakeConnection(cursor_class=_PostgresLikeCursor)
        db = _fake_client(conn)
        with pytest.raises(ExecutionError, match="RETURNING") as exc_info:
            db.insert("INSERT INTO t (name) VALUES (%s)", ["s", "Alice"])
        assert exc_info.value.operation == "insert"
        assert conn.cursors[-1].closed
        assert conn.rollbacks == 1
        assert conn.commits == 0
