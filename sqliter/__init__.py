"""
SQLiter: a thin, named-statement wrapper over the SQLite engine.
"""
from sqliter.config import Config
from sqliter.connection import MEMORY, Connection
from sqliter.exceptions import (
    EngineError,
    PreconditionFailed,
    SQLiterError,
    TypeMismatch,
    UnknownKey,
)
from sqliter.results import check_result, error_string, result_name, translate_errors
from sqliter.statement import Statement, StatementState
from sqliter.types import ColumnType, Value, ValueKind
from sqliter.value import ValueView

__version__ = "0.1.0"

__all__ = [
    "MEMORY",
    "ColumnType",
    "Config",
    "Connection",
    "EngineError",
    "PreconditionFailed",
    "SQLiterError",
    "Statement",
    "StatementState",
    "TypeMismatch",
    "UnknownKey",
    "Value",
    "ValueKind",
    "ValueView",
    "check_result",
    "error_string",
    "result_name",
    "translate_errors",
]
