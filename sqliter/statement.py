"""
Prepared statement handle.

A Statement owns one compiled query against a live engine connection. It
exposes:
- Positional (1-based) and aliased binding of input parameters
- step/reset/clear lifecycle
- Positional (0-based) and aliased, type-checked column getters
- An unchecked ValueView per column (get_column)
- Result-shape introspection (column count, origin database/table/column)

Statements are created by Connection.prepare_statement() and destroyed by
their Connection; they cannot be copied or pickled.

Lifecycle:

    READY --step() with row--> HAS_ROW --step()/reset()--> READY | DONE
    DONE  --reset()--> READY

Bindings may change in any state and take effect when execution (re)starts,
i.e. on the first step() after compilation or after reset(). Column reads
are only meaningful in HAS_ROW; outside it get_type() reports ERROR and the
ValueView reads NULL.
"""
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import apsw
import apsw.ext

from sqliter import conversions
from sqliter.exceptions import TypeMismatch, UnknownKey
from sqliter.results import (
    SQLITE_MISUSE,
    SQLITE_OK,
    SQLITE_RANGE,
    Recorder,
    check_result,
    engine_error,
    translate_errors,
)
from sqliter.types import (
    INT32_MAX,
    INT32_MIN,
    INT64_MAX,
    INT64_MIN,
    ColumnType,
    NativeValue,
    Value,
    ValueKind,
)
from sqliter.value import ValueView

logger = logging.getLogger(__name__)

# A bind position / column index, or an alias registered for one
Key = Union[int, str]

_PARAMETER_MARKERS = ":@$?"

# SQL comments; text holding nothing else prepares to no statement
_NO_STATEMENT = re.compile(r"--[^\n]*|/\*.*?(?:\*/|$)", re.DOTALL)


class StatementState(Enum):
    READY = "ready"
    HAS_ROW = "has_row"
    DONE = "done"


class Statement:
    """
    Handle owning one compiled query.

    Each handle keeps two independent alias tables:
    - input aliases: name -> 1-based bind position
    - output aliases: name -> 0-based column index

    Every bind*/get* method accepts either the position or an alias.
    """

    def __init__(
        self,
        db: apsw.Connection,
        sql: str,
        *,
        name: Optional[str] = None,
        can_cache: bool = True,
        trace_sql: bool = False,
        recorder: Optional[Recorder] = None,
    ):
        """
        Compile sql against db.

        Only the first statement of sql is compiled; any text after it is
        ignored.

        Args:
            db: Live engine connection
            sql: SQL text
            name: Registry name, used in logs
            can_cache: Let the engine reuse compiled statements
            trace_sql: Log every execution at DEBUG level
            recorder: Callback receiving the outcome of each engine call

        Raises:
            EngineError: If the text does not compile or holds no statement
        """
        if not isinstance(sql, str):
            raise TypeError(f"SQL text must be a str, got {type(sql).__name__}")

        self.name = name
        self._db: Optional[apsw.Connection] = db
        self._recorder = recorder
        self._can_cache = can_cache
        self._trace_sql = trace_sql

        self._input_alias: Dict[str, int] = {}
        self._output_alias: Dict[str, int] = {}

        self._cursor: Optional[apsw.Cursor] = None
        self._row: Optional[Tuple[NativeValue, ...]] = None
        self._state = StatementState.READY

        details = self._compile(db, sql)
        self._sql: str = details.first_query
        self._parameter_names: Tuple[Optional[str], ...] = tuple(details.bindings_names)
        self._description: Tuple[Tuple[str, str], ...] = tuple(details.description)
        self._description_full: Optional[Tuple[Tuple[Any, ...], ...]] = (
            tuple(details.description_full) if details.description_full is not None else None
        )
        self._bindings: List[NativeValue] = [None] * details.bindings_count

    def _compile(self, db: apsw.Connection, sql: str) -> apsw.ext.QueryDetails:
        """Prepare sql without running it and describe its parameters and columns."""
        if not _NO_STATEMENT.sub("", sql).replace(";", "").strip():
            raise engine_error(SQLITE_MISUSE, "No SQL statement to prepare", self._recorder)
        with translate_errors(self._recorder):
            details = apsw.ext.query_info(db, sql)
        if not details.has_vdbe:
            raise engine_error(SQLITE_MISUSE, "No SQL statement to prepare", self._recorder)
        return details

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    @property
    def is_alive(self) -> bool:
        """False once the statement has been destroyed."""
        return self._db is not None

    @property
    def state(self) -> StatementState:
        return self._state

    @property
    def sql(self) -> str:
        """Text of the compiled statement."""
        return self._sql

    def _require_alive(self) -> None:
        if self._db is None:
            raise engine_error(SQLITE_MISUSE, "Statement has been destroyed", self._recorder)

    def _release_cursor(self) -> None:
        # force discards pending rows and the outcome of the last step
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            cursor.close(True)

    def destroy(self) -> None:
        """
        Finalize the compiled statement.

        Safe to call more than once. Any later call other than destroy()
        raises EngineError (SQLITE_MISUSE).
        """
        if self._db is None:
            return
        self._release_cursor()
        self._input_alias.clear()
        self._output_alias.clear()
        self._row = None
        self._state = StatementState.DONE
        self._db = None
        logger.debug(f"Statement destroyed: {self.name or self._sql!r}")

    def __copy__(self) -> Statement:
        raise TypeError("Statement handles cannot be copied")

    def __deepcopy__(self, memo: Dict[int, Any]) -> Statement:
        raise TypeError("Statement handles cannot be copied")

    def __reduce_ex__(self, protocol: Any) -> Any:
        raise TypeError("Statement handles cannot be pickled")

    def __repr__(self) -> str:
        status = self._state.value if self.is_alive else "destroyed"
        return f"<Statement name={self.name!r} state={status} sql={self._sql!r}>"

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def set_input_alias(self, alias: str, position: int) -> None:
        """
        Name a 1-based bind position.

        The position is not validated until the alias is used. Registering
        an alias name a second time is ignored: the first mapping is kept.
        """
        self._require_alive()
        self._register_alias(self._input_alias, "input", alias, position)

    def set_output_alias(self, alias: str, column: int) -> None:
        """
        Name a 0-based result column.

        The column is not validated until the alias is used. Registering
        an alias name a second time is ignored: the first mapping is kept.
        """
        self._require_alive()
        self._register_alias(self._output_alias, "output", alias, column)

    @staticmethod
    def _register_alias(table: Dict[str, int], kind: str, alias: str, position: int) -> None:
        if alias in table:
            logger.warning(
                f"{kind.capitalize()} alias '{alias}' already maps to {table[alias]}; "
                f"ignoring new mapping to {position}"
            )
            return
        table[alias] = position

    def input_alias(self, alias: str) -> int:
        """Position registered for an input alias."""
        try:
            return self._input_alias[alias]
        except KeyError:
            raise UnknownKey(alias, "input alias") from None

    def output_alias(self, alias: str) -> int:
        """Column registered for an output alias."""
        try:
            return self._output_alias[alias]
        except KeyError:
            raise UnknownKey(alias, "output alias") from None

    def _position(self, key: Key) -> int:
        """Resolve key to a bind position and check it against the parameter count."""
        position = self.input_alias(key) if isinstance(key, str) else key
        if not isinstance(position, int) or isinstance(position, bool):
            raise TypeError(f"Bind position must be an int or alias, got {type(key).__name__}")
        if not 1 <= position <= len(self._bindings):
            raise engine_error(SQLITE_RANGE, recorder=self._recorder)
        return position

    def _column_index(self, key: Key) -> int:
        index = self.output_alias(key) if isinstance(key, str) else key
        if not isinstance(index, int) or isinstance(index, bool):
            raise TypeError(f"Column must be an int or alias, got {type(key).__name__}")
        return index

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def _store(self, key: Key, value: NativeValue) -> None:
        self._require_alive()
        position = self._position(key)
        self._bindings[position - 1] = value
        check_result(SQLITE_OK, recorder=self._recorder)

    def bind(self, key: Key, value: object) -> None:
        """
        Bind a value, choosing the binder from its Python type.

        int binds as a 64-bit integer, float as a double, str as text,
        bytes-like as a blob, None as NULL and Value by its kind.

        Raises:
            UnknownKey: If key is an unregistered input alias
            EngineError: If the position is outside 1..parameter_count()
            TypeError: If the value type is not supported
        """
        if value is None:
            self.bind_null(key)
        elif isinstance(value, Value):
            self.bind_value(key, value)
        elif isinstance(value, int):
            self.bind_int64(key, int(value))
        elif isinstance(value, float):
            self.bind_double(key, value)
        elif isinstance(value, str):
            self.bind_text(key, value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self.bind_blob(key, value)
        else:
            raise TypeError(f"Cannot bind value of type {type(value).__name__}")

    def bind_int(self, key: Key, value: int) -> None:
        """Bind a 32-bit signed integer."""
        if not isinstance(value, int):
            raise TypeError(f"bind_int expects an int, got {type(value).__name__}")
        if not INT32_MIN <= value <= INT32_MAX:
            raise OverflowError(f"{value} does not fit in 32 bits")
        self._store(key, int(value))

    def bind_int64(self, key: Key, value: int) -> None:
        """Bind a 64-bit signed integer."""
        if not isinstance(value, int):
            raise TypeError(f"bind_int64 expects an int, got {type(value).__name__}")
        if not INT64_MIN <= value <= INT64_MAX:
            raise OverflowError(f"{value} does not fit in 64 bits")
        self._store(key, int(value))

    def bind_double(self, key: Key, value: float) -> None:
        if not isinstance(value, (int, float)):
            raise TypeError(f"bind_double expects a float, got {type(value).__name__}")
        self._store(key, float(value))

    def bind_text(self, key: Key, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"bind_text expects a str, got {type(value).__name__}")
        self._store(key, value)

    def bind_blob(self, key: Key, data: Union[bytes, bytearray, memoryview], size: Optional[int] = None) -> None:
        """
        Bind a byte sequence.

        Args:
            key: Position or input alias
            data: Bytes to bind (copied)
            size: Number of leading bytes to bind; all of data when None
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"bind_blob expects bytes, got {type(data).__name__}")
        blob = bytes(data)
        if size is not None:
            if size < 0 or size > len(blob):
                raise ValueError(f"Blob size {size} outside 0..{len(blob)}")
            blob = blob[:size]
        self._store(key, blob)

    def bind_null(self, key: Key) -> None:
        self._store(key, None)

    def bind_value(self, key: Key, value: Value) -> None:
        """Bind a tagged Value using the binder for its kind."""
        if value.kind is ValueKind.INT:
            self.bind_int(key, value.payload)  # type: ignore[arg-type]
        elif value.kind is ValueKind.INT64:
            self.bind_int64(key, value.payload)  # type: ignore[arg-type]
        elif value.kind is ValueKind.DOUBLE:
            self.bind_double(key, value.payload)  # type: ignore[arg-type]
        elif value.kind is ValueKind.TEXT:
            self.bind_text(key, value.payload)  # type: ignore[arg-type]
        elif value.kind is ValueKind.BLOB:
            self.bind_blob(key, value.payload)  # type: ignore[arg-type]
        else:
            self.bind_null(key)

    def clear(self) -> None:
        """Set every bound parameter to NULL. Does not reset execution."""
        self._require_alive()
        self._bindings = [None] * len(self._bindings)

    def parameter_count(self) -> int:
        self._require_alive()
        return len(self._bindings)

    def parameter_name(self, position: int) -> Optional[str]:
        """
        Name of a parameter without its marker (":id" -> "id").

        Returns None for anonymous ("?") parameters and out-of-range positions.
        """
        self._require_alive()
        if not 1 <= position <= len(self._parameter_names):
            return None
        return self._parameter_names[position - 1]

    def parameter_index(self, name: str) -> int:
        """1-based position of a named parameter; the marker is optional."""
        self._require_alive()
        bare = name[1:] if name[:1] and name[0] in _PARAMETER_MARKERS else name
        try:
            return self._parameter_names.index(bare) + 1
        except ValueError:
            raise UnknownKey(name, "parameter") from None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def step(self) -> bool:
        """
        Advance execution by one row.

        Returns:
            True if a row is available for reading, False once execution has
            completed. Keeps returning False until reset().

        Raises:
            EngineError: If the engine fails; the statement is then done
        """
        self._require_alive()
        if self._state is StatementState.DONE:
            return False

        row: Optional[Tuple[NativeValue, ...]] = None
        with translate_errors(self._recorder):
            try:
                if self._cursor is None:
                    self._cursor = self._start()
                row = next(self._cursor, None)
            except Exception:
                self._finish()
                raise

        if row is None:
            self._finish()
            return False

        self._row = tuple(row)
        self._state = StatementState.HAS_ROW
        return True

    def _start(self) -> apsw.Cursor:
        assert self._db is not None
        if self._trace_sql:
            logger.debug(f"Executing {self._sql!r} with bindings {self._bindings!r}")
        cursor = self._db.cursor()
        cursor.execute(self._sql, tuple(self._bindings), can_cache=self._can_cache)
        return cursor

    def _finish(self) -> None:
        self._release_cursor()
        self._row = None
        self._state = StatementState.DONE

    def reset(self) -> None:
        """Return to the pre-execution state. Bindings are kept."""
        self._require_alive()
        with translate_errors(self._recorder):
            self._release_cursor()
        self._row = None
        self._state = StatementState.READY

    def execute(self) -> int:
        """
        Step until done, then reset.

        Returns:
            Number of rows the execution produced
        """
        rows = 0
        while self.step():
            rows += 1
        self.reset()
        return rows

    # ------------------------------------------------------------------
    # Column access
    # ------------------------------------------------------------------

    def _cell(self, index: int) -> NativeValue:
        """Raw cell of the current row; NULL outside a row or the column range."""
        if self._row is None or not 0 <= index < len(self._row):
            return None
        return self._row[index]

    def _type_at(self, index: int) -> ColumnType:
        if self._row is None or not 0 <= index < len(self._row):
            return ColumnType.ERROR
        return ColumnType.of(self._row[index])

    def _checked(self, column: Key, expected: ColumnType) -> Any:
        self._require_alive()
        index = self._column_index(column)
        actual = self._type_at(index)
        if actual is not expected:
            raise TypeMismatch(column, expected, actual)
        return self._row[index]  # type: ignore[index]

    def get_type(self, column: Key) -> ColumnType:
        """Storage class of a cell in the current row (ERROR if there is none)."""
        self._require_alive()
        return self._type_at(self._column_index(column))

    def get_size(self, column: Key) -> int:
        """Size in bytes of a cell, measured the way the engine does."""
        self._require_alive()
        return conversions.byte_size(self._cell(self._column_index(column)))

    def get_string(self, column: Key) -> str:
        return self._checked(column, ColumnType.TEXT)

    def get_int(self, column: Key) -> int:
        """Integer cell truncated to 32 bits, as the engine's int reader does."""
        return conversions.to_int32(self._checked(column, ColumnType.INTEGER))

    def get_int64(self, column: Key) -> int:
        return self._checked(column, ColumnType.INTEGER)

    def get_double(self, column: Key) -> float:
        return self._checked(column, ColumnType.FLOAT)

    def get_blob(self, column: Key) -> bytes:
        return bytes(self._checked(column, ColumnType.BLOB))

    def get_value(self, column: Key) -> Value:
        """Cell as a tagged Value in its own storage class."""
        self._require_alive()
        return Value.of(self._cell(self._column_index(column)))

    def get_column(self, column: Key) -> ValueView:
        """Unchecked view of a cell; see sqliter.value."""
        self._require_alive()
        return ValueView(self, self._column_index(column))

    def row(self) -> Optional[Tuple[NativeValue, ...]]:
        """Current row as native values, None outside HAS_ROW."""
        self._require_alive()
        return self._row

    # ------------------------------------------------------------------
    # Result shape
    # ------------------------------------------------------------------

    def column_count(self) -> int:
        self._require_alive()
        return len(self._description)

    def column_label(self, column: Key) -> Optional[str]:
        """Name of a result column as it appears in the result (AS name)."""
        self._require_alive()
        index = self._column_index(column)
        if not 0 <= index < len(self._description):
            return None
        return self._description[index][0]

    def _metadata(self, column: Key, field: int) -> Optional[str]:
        self._require_alive()
        index = self._column_index(column)
        if self._description_full is None or not 0 <= index < len(self._description_full):
            return None
        return self._description_full[index][field]

    def database_name(self, column: Key) -> Optional[str]:
        """Database ("main", "temp", attached name) a column comes from."""
        return self._metadata(column, 2)

    def table_name(self, column: Key) -> Optional[str]:
        """Table a column comes from."""
        return self._metadata(column, 3)

    def column_name(self, column: Key) -> Optional[str]:
        """Name of the table column a result column comes from."""
        return self._metadata(column, 4)
