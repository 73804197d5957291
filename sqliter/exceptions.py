"""
Exception hierarchy for SQLiter.

Every failure raised by the package derives from SQLiterError so callers can
catch the whole family in one place:

- EngineError: SQLite returned a non-success result code
- TypeMismatch: a checked getter was used on a cell of another storage class
- UnknownKey: a statement name or alias is not registered
- PreconditionFailed: create() on an existing path / open() on a missing one
"""
from __future__ import annotations

from typing import Optional


class SQLiterError(Exception):
    """Base class for all SQLiter errors"""
    pass


class EngineError(SQLiterError):
    """Raised when the engine reports a non-success result code"""

    def __init__(
        self,
        code: int,
        message: str,
        extended_code: Optional[int] = None,
    ):
        self.code = code
        self.extended_code = extended_code if extended_code is not None else code
        self.message = message
        super().__init__(f"{message} ({self.name})")

    @property
    def name(self) -> str:
        """Symbolic name of the (extended) result code, e.g. SQLITE_RANGE."""
        # Imported lazily; results imports this module.
        from sqliter.results import result_name

        return result_name(self.extended_code)


class TypeMismatch(SQLiterError, TypeError):
    """Raised when a column does not hold the storage class a getter expects"""

    def __init__(self, column: object, expected: object, actual: object):
        self.column = column
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Column {column!r} does not hold a {getattr(expected, 'label', expected)} "
            f"(holds {getattr(actual, 'label', actual)})"
        )


class UnknownKey(SQLiterError, KeyError):
    """Raised when a statement name or alias was never registered"""

    def __init__(self, key: str, kind: str):
        self.key = key
        self.kind = kind
        super().__init__(f"Unknown {kind}: {key!r}")

    def __str__(self) -> str:
        # KeyError would otherwise render the repr of the message
        return str(self.args[0])


class PreconditionFailed(SQLiterError):
    """Raised when open()/create() find the filesystem in the wrong state"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")
