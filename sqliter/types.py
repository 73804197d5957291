"""
Storage classes and the tagged Value variant.

SQLite types values per cell, not per column: any cell may report a different
storage class on every row. ColumnType is the closed set of classes the engine
can report (plus an error marker), Value carries one cell together with the
kind it was read or bound as.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Union

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# Python representations of the five storage classes
NativeValue = Union[int, float, str, bytes, None]


class ColumnType(IntEnum):
    """
    Storage class reported for a cell.

    The numeric values match the engine's fundamental datatype codes;
    ERROR marks an invalid column or a read with no current row.
    """
    ERROR = 0
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5

    @property
    def label(self) -> str:
        """Short name used in error messages"""
        return {
            ColumnType.ERROR: "error",
            ColumnType.INTEGER: "int",
            ColumnType.FLOAT: "float",
            ColumnType.TEXT: "string",
            ColumnType.BLOB: "blob",
            ColumnType.NULL: "null",
        }[self]

    @classmethod
    def of(cls, value: object) -> 'ColumnType':
        """
        Storage class of a native value as returned by the engine.

        Args:
            value: int, float, str, bytes-like or None

        Returns:
            The matching ColumnType, ERROR for anything else
        """
        if value is None:
            return cls.NULL
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.FLOAT
        if isinstance(value, str):
            return cls.TEXT
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls.BLOB
        return cls.ERROR


class ValueKind(Enum):
    """How a value is bound or read; INT and INT64 share the INTEGER class."""
    INT = "int"
    INT64 = "int64"
    DOUBLE = "double"
    TEXT = "text"
    BLOB = "blob"
    NULL = "null"

    @property
    def column_type(self) -> ColumnType:
        return {
            ValueKind.INT: ColumnType.INTEGER,
            ValueKind.INT64: ColumnType.INTEGER,
            ValueKind.DOUBLE: ColumnType.FLOAT,
            ValueKind.TEXT: ColumnType.TEXT,
            ValueKind.BLOB: ColumnType.BLOB,
            ValueKind.NULL: ColumnType.NULL,
        }[self]


@dataclass(frozen=True, slots=True)
class Value:
    """A single cell value tagged with its kind.

    Example:
        >>> Value.of(5)
        Value(kind=<ValueKind.INT: 'int'>, payload=5)
        >>> Value.of(2 ** 40).kind
        <ValueKind.INT64: 'int64'>
    """

    kind: ValueKind
    payload: NativeValue = None

    def __post_init__(self) -> None:
        expected = {
            ValueKind.INT: int,
            ValueKind.INT64: int,
            ValueKind.DOUBLE: float,
            ValueKind.TEXT: str,
            ValueKind.BLOB: bytes,
        }.get(self.kind)
        if expected is None:
            if self.payload is not None:
                raise ValueError("NULL values carry no payload")
            return
        if not isinstance(self.payload, expected) or isinstance(self.payload, bool):
            raise TypeError(
                f"{self.kind.value} value needs a {expected.__name__} payload, "
                f"got {type(self.payload).__name__}"
            )
        if self.kind is ValueKind.INT and not INT32_MIN <= self.payload <= INT32_MAX:
            raise OverflowError(f"{self.payload} does not fit in 32 bits")
        if self.kind is ValueKind.INT64 and not INT64_MIN <= self.payload <= INT64_MAX:
            raise OverflowError(f"{self.payload} does not fit in 64 bits")

    @property
    def column_type(self) -> ColumnType:
        return self.kind.column_type

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    @classmethod
    def null(cls) -> 'Value':
        return cls(ValueKind.NULL)

    @classmethod
    def of(cls, value: object) -> 'Value':
        """
        Wrap a native Python value.

        Integers that fit in 32 bits become INT, larger ones INT64.

        Raises:
            TypeError: If value is not int, float, str, bytes-like or None
        """
        if value is None:
            return cls.null()
        if isinstance(value, bool):
            return cls(ValueKind.INT, int(value))
        if isinstance(value, int):
            kind = ValueKind.INT if INT32_MIN <= value <= INT32_MAX else ValueKind.INT64
            return cls(kind, value)
        if isinstance(value, float):
            return cls(ValueKind.DOUBLE, value)
        if isinstance(value, str):
            return cls(ValueKind.TEXT, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(ValueKind.BLOB, bytes(value))
        raise TypeError(f"Unsupported value type: {type(value).__name__}")

