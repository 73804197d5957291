"""
Unchecked, deferred access to one column of a statement's current row.

A ValueView is what Statement.get_column() returns. It holds no data of its
own: every conversion reads the statement's current row at the time it is
requested and applies the engine's coercion rules without checking the
cell's storage class.

CONVERTING TO THE WRONG TYPE SILENTLY COERCES (text "12abc" reads as 12,
NULL reads as 0). Check Statement.get_type() first, or use the checked
getters, when the storage class is not known.

A view is only meaningful between a step() that produced a row and the next
step()/reset() on the same statement; outside that window it reads as NULL.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqliter import conversions
from sqliter.types import ColumnType, NativeValue, Value

if TYPE_CHECKING:
    from sqliter.statement import Statement


class ValueView:
    """Deferred typed accessor over one cell of the current row."""

    __slots__ = ("_statement", "_column")

    def __init__(self, statement: Statement, column: int):
        """
        Args:
            statement: Statement whose current row is read
            column: 0-based column index
        """
        self._statement = statement
        self._column = column

    @property
    def column(self) -> int:
        return self._column

    def _raw(self) -> NativeValue:
        return self._statement._cell(self._column)

    def as_int(self) -> int:
        """Cell as a 32-bit signed integer"""
        return conversions.to_int32(self._raw())

    def as_int64(self) -> int:
        """Cell as a 64-bit signed integer"""
        return conversions.to_int64(self._raw())

    def as_double(self) -> float:
        return conversions.to_double(self._raw())

    def as_text(self) -> Optional[str]:
        return conversions.to_text(self._raw())

    def as_blob(self) -> Optional[bytes]:
        return conversions.to_blob(self._raw())

    def column_type(self) -> ColumnType:
        """Storage class of the cell right now."""
        return self._statement.get_type(self._column)

    def value(self) -> Value:
        """The cell as a tagged Value, in its own storage class."""
        return Value.of(self._raw())

    def __int__(self) -> int:
        return self.as_int64()

    def __float__(self) -> float:
        return self.as_double()

    def __str__(self) -> str:
        return self.as_text() or ""

    def __bytes__(self) -> bytes:
        return self.as_blob() or b""

    def __repr__(self) -> str:
        return f"<ValueView column={self._column} value={self._raw()!r}>"
