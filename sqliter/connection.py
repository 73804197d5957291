"""
SQLite connection and statement registry.

Responsibilities:
- Open / create / force-open a database file or in-memory instance
- Own a name-keyed registry of prepared Statements
- One-shot execution (raw_exec) and change counters
- Last-result introspection (error_code / error_msg)
- Thin pass-throughs: user-defined functions, whole-database backup/restore

Teardown order:
- close() destroys every registered statement before releasing the engine
  connection. Releasing a connection while statements are still compiled
  against it is undefined in the engine, so a Statement never outlives the
  Connection that compiled it.

Thread Safety:
- None. A Connection and its Statements must not be used from several
  threads at once without external locking.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from types import TracebackType
from typing import Any, Callable, Dict, List, Optional, Type, Union

import apsw

from sqliter.config import Config
from sqliter.exceptions import PreconditionFailed, UnknownKey
from sqliter.results import (
    SQLITE_MISUSE,
    SQLITE_OK,
    engine_error,
    error_string,
    translate_errors,
)
from sqliter.statement import Statement

logger = logging.getLogger(__name__)

Location = Union[str, Path]

MEMORY = ":memory:"

_OPEN_FLAGS = apsw.SQLITE_OPEN_READWRITE
_CREATE_FLAGS = apsw.SQLITE_OPEN_READWRITE | apsw.SQLITE_OPEN_CREATE

_PRAGMA_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def file_exists(location: Location) -> bool:
    """True if something exists at location (a stat() call succeeds)."""
    return Path(location).exists()


class Connection:
    """
    Owns one engine connection and the statements compiled against it.

    Usage:
        with Connection(":memory:") as db:
            db.raw_exec("CREATE TABLE t(a INTEGER)")
            insert = db.prepare_statement("insert", "INSERT INTO t(a) VALUES (?)")
            insert.bind(1, 5)
            insert.step()
            insert.reset()
    """

    def __init__(self, location: Optional[Location] = None, config: Optional[Config] = None):
        """
        Create a Connection.

        Args:
            location: When given, the database is opened (or created) at once,
                      as force_open() does
            config: Connection options; defaults when None
        """
        self.config = config if config is not None else Config()
        self._db: Optional[apsw.Connection] = None
        self._location: Optional[str] = None
        self._statements: Dict[str, Statement] = {}
        self._last_code = SQLITE_OK
        self._last_message = error_string(SQLITE_OK)

        if location is not None:
            self.force_open(location)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> Connection:
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Connection {self._location!r} {state} statements={len(self._statements)}>"

    # ------------------------------------------------------------------
    # Result bookkeeping
    # ------------------------------------------------------------------

    def _record(self, code: int, message: str) -> None:
        self._last_code = code
        self._last_message = message

    def error_code(self) -> int:
        """Primary result code of the most recent engine call."""
        return self._last_code

    def error_msg(self) -> str:
        """Message of the most recent engine call ("not an error" on success)."""
        return self._last_message

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @property
    def location(self) -> Optional[str]:
        """Location the connection was opened with, None when closed."""
        return self._location

    def _require_open(self) -> apsw.Connection:
        if self._db is None:
            raise engine_error(SQLITE_MISUSE, "Database connection is not open", self._record)
        return self._db

    def _connect(self, location: Location, flags: int) -> None:
        path = str(location)
        if self._db is not None:
            self.close()

        with translate_errors(self._record):
            db = apsw.Connection(path, flags=flags)

        self._db = db
        self._location = path
        logger.info(f"Database opened: {path}")

        try:
            self._apply_pragmas()
        except Exception:
            self.close()
            raise

    def _apply_pragmas(self) -> None:
        db = self._require_open()
        for name, value in self.config.pragmas.items():
            if not _PRAGMA_NAME.match(name):
                raise ValueError(f"Invalid pragma name: {name!r}")
            if isinstance(value, bool):
                value = "ON" if value else "OFF"
            with translate_errors(self._record):
                db.execute(f"PRAGMA {name}={value}").fetchall()
            logger.debug(f"Applied PRAGMA {name}={value}")

    def force_open(self, location: Location) -> None:
        """Open the database at location, creating it if needed."""
        self._connect(location, _CREATE_FLAGS)

    def open(self, location: Location) -> None:
        """
        Open an existing database.

        Raises:
            PreconditionFailed: If nothing exists at location
        """
        if not file_exists(location):
            raise PreconditionFailed(str(location), "File does not exist")
        self._connect(location, _OPEN_FLAGS)

    def create(self, location: Location) -> None:
        """
        Create a new database.

        Raises:
            PreconditionFailed: If something already exists at location
        """
        if file_exists(location):
            raise PreconditionFailed(str(location), "File already exists")
        self._connect(location, _CREATE_FLAGS)

    def close(self) -> None:
        """
        Destroy every statement, then release the engine connection.

        Does nothing when already closed.
        """
        if self._db is None:
            return

        self.destroy_statements()

        db, self._db = self._db, None
        location, self._location = self._location, None
        try:
            with translate_errors(self._record):
                db.close()
        except Exception as exc:
            logger.error(f"Error closing database connection {location}: {exc}")
            raise
        logger.info(f"Database closed: {location}")

    # ------------------------------------------------------------------
    # Statement registry
    # ------------------------------------------------------------------

    def prepare_statement(self, name: str, sql: str) -> Statement:
        """
        Compile sql and register the statement under name.

        A statement already registered under name is destroyed first.

        Returns:
            The new Statement

        Raises:
            EngineError: If sql does not compile
        """
        db = self._require_open()
        if name in self._statements:
            self.destroy_statement(name)

        statement = Statement(
            db,
            sql,
            name=name,
            can_cache=self.config.statement_cache,
            trace_sql=self.config.trace_sql,
            recorder=self._record,
        )
        self._statements[name] = statement
        logger.debug(f"Prepared statement '{name}': {statement.sql}")
        return statement

    def get_statement(self, name: str) -> Statement:
        """
        Raises:
            UnknownKey: If no statement is registered under name
        """
        try:
            return self._statements[name]
        except KeyError:
            raise UnknownKey(name, "statement") from None

    def destroy_statement(self, name: str) -> None:
        """
        Raises:
            UnknownKey: If no statement is registered under name
        """
        statement = self.get_statement(name)
        del self._statements[name]
        statement.destroy()

    def destroy_statements(self) -> None:
        """Destroy every registered statement."""
        statements = list(self._statements.values())
        self._statements.clear()
        for statement in statements:
            statement.destroy()

    def statement_names(self) -> List[str]:
        return list(self._statements)

    def __contains__(self, name: object) -> bool:
        return name in self._statements

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def raw_exec(self, sql: str) -> int:
        """
        Compile, run to completion and discard every statement in sql.

        Used for DDL and one-shot DML.

        Returns:
            changes() after execution
        """
        db = self._require_open()
        with translate_errors(self._record):
            cursor = db.cursor()
            try:
                for _ in cursor.execute(sql):
                    pass
            finally:
                cursor.close(True)
        return db.changes()

    def changes(self) -> int:
        """Rows changed by the most recently completed INSERT/UPDATE/DELETE."""
        return self._require_open().changes()

    def total_changes(self) -> int:
        """Rows changed since the connection was opened."""
        return self._require_open().total_changes()

    # ------------------------------------------------------------------
    # User-defined functions
    # ------------------------------------------------------------------

    def scalar_function(
        self,
        name: str,
        num_args: int,
        func: Callable[..., Any],
        *,
        deterministic: bool = False,
    ) -> None:
        """Register a scalar SQL function (num_args=-1 for any arity)."""
        db = self._require_open()
        with translate_errors(self._record):
            db.create_scalar_function(name, func, num_args, deterministic=deterministic)
        logger.debug(f"Registered scalar function {name}/{num_args}")

    def aggregate_function(self, name: str, num_args: int, factory: Callable[[], Any]) -> None:
        """
        Register an aggregate SQL function.

        factory is called once per aggregation and returns a
        (context, step, final) tuple: step(context, *args) is called per
        row and final(context) returns the result.
        """
        db = self._require_open()
        with translate_errors(self._record):
            db.create_aggregate_function(name, factory, num_args)
        logger.debug(f"Registered aggregate function {name}/{num_args}")

    def delete_function(self, name: str, num_args: int = -1) -> None:
        """Remove a function registered with the same name and arity."""
        db = self._require_open()
        with translate_errors(self._record):
            db.create_scalar_function(name, None, num_args)
        logger.debug(f"Removed function {name}/{num_args}")

    # ------------------------------------------------------------------
    # Backup / restore
    # ------------------------------------------------------------------

    def save(self, location: Location) -> None:
        """Copy the whole database into the file at location."""
        db = self._require_open()
        with translate_errors(self._record):
            target = apsw.Connection(str(location), flags=_CREATE_FLAGS)
            try:
                with target.backup("main", db, "main") as backup:
                    backup.step()
            finally:
                target.close()
        logger.info(f"Database saved to {location}")

    def load(self, location: Location) -> None:
        """
        Replace the database contents with the database file at location.

        Registered statements are reset first so none holds the database.

        Raises:
            PreconditionFailed: If nothing exists at location
        """
        db = self._require_open()
        if not file_exists(location):
            raise PreconditionFailed(str(location), "File does not exist")

        for statement in self._statements.values():
            statement.reset()

        with translate_errors(self._record):
            source = apsw.Connection(str(location), flags=apsw.SQLITE_OPEN_READONLY)
            try:
                with db.backup("main", source, "main") as backup:
                    backup.step()
            finally:
                source.close()
        logger.info(f"Database loaded from {location}")


if __name__ == "__main__":  # pragma: no cover
    print("=== SQLiter Smoke Test ===")
    with Connection(MEMORY) as conn:
        conn.raw_exec("CREATE TABLE t(a INTEGER, b TEXT)")
        stmt = conn.prepare_statement("insert", "INSERT INTO t(a, b) VALUES (?, ?)")
        stmt.bind(1, 5)
        stmt.bind(2, "five")
        stmt.step()
        stmt.reset()
        print("Changes:", conn.changes())
    print("Done.")
