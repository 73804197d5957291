"""
Tests for sqliter.connection: open modes, the statement registry, one-shot
execution, user functions and backup/restore.
"""
from __future__ import annotations

import logging

import pytest

from sqliter.config import Config
from sqliter.connection import MEMORY, Connection
from sqliter.exceptions import EngineError, PreconditionFailed, UnknownKey
from sqliter.results import SQLITE_ERROR, SQLITE_MISUSE

pytestmark = pytest.mark.unit


def count_rows(conn, table="people"):
    stmt = conn.prepare_statement("_count", f"SELECT count(*) FROM {table}")
    stmt.step()
    count = stmt.get_int(0)
    conn.destroy_statement("_count")
    return count


# -------------------------
# Open / create / close
# -------------------------

class TestOpenModes:
    def test_open_missing_file_fails(self, db_path):
        conn = Connection()

        with pytest.raises(PreconditionFailed) as exc_info:
            conn.open(db_path)

        assert exc_info.value.reason == "File does not exist"
        assert not conn.is_open

    def test_create_existing_file_fails(self, db_path):
        db_path.write_bytes(b"")
        conn = Connection()

        with pytest.raises(PreconditionFailed) as exc_info:
            conn.create(db_path)

        assert exc_info.value.reason == "File already exists"
        assert not conn.is_open

    def test_create_then_open(self, db_path):
        conn = Connection()
        conn.create(db_path)
        conn.raw_exec("CREATE TABLE t(a); INSERT INTO t VALUES (1)")
        conn.close()

        assert db_path.exists()

        conn.open(db_path)
        assert count_rows(conn, "t") == 1
        conn.close()

    def test_force_open_creates_and_reopens(self, db_path):
        with Connection(db_path) as conn:
            conn.raw_exec("CREATE TABLE t(a)")

        with Connection() as conn:
            conn.force_open(db_path)
            assert count_rows(conn, "t") == 0

    def test_location(self, db_path):
        conn = Connection(db_path)
        assert conn.location == str(db_path)
        conn.close()
        assert conn.location is None

    def test_open_while_open_closes_previous(self, db_path):
        conn = Connection(MEMORY)
        stmt = conn.prepare_statement("one", "SELECT 1")

        conn.force_open(db_path)

        assert not stmt.is_alive
        assert conn.statement_names() == []
        assert conn.location == str(db_path)
        conn.close()

    def test_close_is_idempotent(self):
        conn = Connection(MEMORY)
        conn.close()
        conn.close()
        assert not conn.is_open

    def test_close_destroys_statements(self, conn):
        first = conn.prepare_statement("a", "SELECT 1")
        second = conn.prepare_statement("b", "SELECT 2")
        second.step()

        conn.close()

        assert not first.is_alive
        assert not second.is_alive

    def test_closed_connection_raises_misuse(self):
        conn = Connection()

        with pytest.raises(EngineError) as exc_info:
            conn.prepare_statement("a", "SELECT 1")

        assert exc_info.value.code == SQLITE_MISUSE
        assert conn.error_code() == SQLITE_MISUSE

    def test_context_manager_closes(self):
        with Connection(MEMORY) as conn:
            stmt = conn.prepare_statement("a", "SELECT 1")

        assert not conn.is_open
        assert not stmt.is_alive

    def test_opening_logs(self, caplog):
        with caplog.at_level(logging.INFO, logger="sqliter.connection"):
            with Connection(MEMORY):
                pass

        messages = [r.getMessage() for r in caplog.records]
        assert any("Database opened" in m for m in messages)
        assert any("Database closed" in m for m in messages)


# -------------------------
# Pragmas
# -------------------------

class TestPragmas:
    def test_pragmas_applied_on_open(self):
        config = Config()
        config.pragmas = {"foreign_keys": True}

        with Connection(MEMORY, config=config) as conn:
            stmt = conn.prepare_statement("fk", "PRAGMA foreign_keys")
            stmt.step()
            assert stmt.get_int(0) == 1

    def test_invalid_pragma_name_closes_connection(self):
        config = Config()
        config.pragmas = {"foreign_keys; DROP TABLE x": 1}
        conn = Connection(config=config)

        with pytest.raises(ValueError):
            conn.force_open(MEMORY)

        assert not conn.is_open


# -------------------------
# Statement registry
# -------------------------

class TestRegistry:
    def test_prepare_registers_by_name(self, conn):
        stmt = conn.prepare_statement("one", "SELECT 1")

        assert conn.get_statement("one") is stmt
        assert "one" in conn
        assert conn.statement_names() == ["one"]

    def test_prepare_same_name_replaces(self, conn):
        old = conn.prepare_statement("q", "SELECT 1")
        new = conn.prepare_statement("q", "SELECT 2")

        assert not old.is_alive
        assert conn.get_statement("q") is new
        new.step()
        assert new.get_int(0) == 2

    def test_get_unknown_statement(self, conn):
        with pytest.raises(UnknownKey) as exc_info:
            conn.get_statement("nope")

        assert exc_info.value.kind == "statement"

    def test_destroy_statement(self, conn):
        stmt = conn.prepare_statement("q", "SELECT 1")

        conn.destroy_statement("q")

        assert not stmt.is_alive
        assert "q" not in conn
        with pytest.raises(UnknownKey):
            conn.destroy_statement("q")

    def test_destroy_statements(self, conn):
        stmts = [conn.prepare_statement(name, "SELECT 1") for name in ("a", "b", "c")]

        conn.destroy_statements()

        assert conn.statement_names() == []
        assert not any(s.is_alive for s in stmts)

    def test_failed_prepare_still_drops_previous(self, conn):
        old = conn.prepare_statement("q", "SELECT 1")

        with pytest.raises(EngineError):
            conn.prepare_statement("q", "SELEC 1")

        assert not old.is_alive
        assert "q" not in conn


# -------------------------
# One-shot execution and counters
# -------------------------

class TestRawExec:
    def test_returns_changes(self, conn):
        conn.raw_exec("CREATE TABLE t(a)")

        assert conn.raw_exec("INSERT INTO t VALUES (1), (2), (3)") == 3
        assert conn.changes() == 3

    def test_runs_every_statement(self, conn):
        conn.raw_exec("CREATE TABLE t(a); INSERT INTO t VALUES (1); INSERT INTO t VALUES (2)")
        assert count_rows(conn, "t") == 2

    def test_total_changes(self, people):
        before = people.total_changes()
        people.raw_exec("UPDATE people SET age = 1")
        people.raw_exec("DELETE FROM people WHERE id = 1")

        assert people.total_changes() == before + 4
        assert people.changes() == 1

    def test_error_raises_and_records(self, conn):
        with pytest.raises(EngineError) as exc_info:
            conn.raw_exec("DROP TABLE missing")

        assert exc_info.value.code == 1
        assert conn.error_code() == 1
        assert "no such table" in conn.error_msg()

    def test_failing_function_raises_engine_error(self, conn):
        def boom(value):
            raise ValueError("boom")

        conn.raw_exec("CREATE TABLE t(a)")
        conn.scalar_function("boom", 1, boom)

        with pytest.raises(EngineError) as exc_info:
            conn.raw_exec("INSERT INTO t VALUES (boom(1))")

        assert exc_info.value.code == SQLITE_ERROR
        assert conn.error_code() == SQLITE_ERROR
        assert conn.error_msg() != "not an error"
        assert count_rows(conn, "t") == 0

    def test_success_resets_last_error(self, conn):
        with pytest.raises(EngineError):
            conn.raw_exec("DROP TABLE missing")

        conn.raw_exec("CREATE TABLE t(a)")

        assert conn.error_code() == 0
        assert conn.error_msg() == "not an error"


# -------------------------
# User-defined functions
# -------------------------

class TestFunctions:
    def test_scalar_function(self, conn):
        conn.scalar_function("double_it", 1, lambda x: x * 2, deterministic=True)

        stmt = conn.prepare_statement("q", "SELECT double_it(21)")
        stmt.step()

        assert stmt.get_int(0) == 42

    def test_aggregate_function(self, people):
        def factory():
            def step(names, name):
                names.append(name)

            def final(names):
                return ",".join(sorted(names))

            return [], step, final

        people.aggregate_function("joined", 1, factory)
        stmt = people.prepare_statement("q", "SELECT joined(name) FROM people")
        stmt.step()

        assert stmt.get_string(0) == "12abc,Ann,Bob"

    def test_delete_function(self, conn):
        conn.scalar_function("one", 0, lambda: 1)
        conn.delete_function("one", 0)

        with pytest.raises(EngineError, match="no such function"):
            conn.prepare_statement("q", "SELECT one()")


# -------------------------
# Backup / restore
# -------------------------

class TestBackup:
    def test_save_then_open(self, people, db_path):
        people.save(db_path)

        with Connection() as copy:
            copy.open(db_path)
            assert count_rows(copy) == 3

    def test_load_replaces_contents(self, people, db_path):
        people.save(db_path)

        with Connection(MEMORY) as target:
            target.raw_exec("CREATE TABLE other(x)")
            target.load(db_path)

            assert count_rows(target) == 3
            with pytest.raises(EngineError, match="no such table"):
                target.prepare_statement("q", "SELECT * FROM other")

    def test_load_resets_statements(self, people, db_path):
        people.save(db_path)
        stmt = people.prepare_statement("q", "SELECT id FROM people ORDER BY id")
        stmt.step()

        people.load(db_path)

        assert stmt.is_alive
        assert stmt.row() is None
        assert stmt.execute() == 3

    def test_load_missing_file(self, conn, db_path):
        with pytest.raises(PreconditionFailed):
            conn.load(db_path)
