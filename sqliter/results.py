"""
Result code translation.

SQLite reports the outcome of every call as an integer result code. This
module turns anything other than a success code into an EngineError carrying
the engine's message, and converts exceptions raised by the apsw binding into
the same structured error. Both Connection and Statement route every engine
call through here so the last outcome can be recorded for error_code() and
error_msg().
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

import apsw
import apsw.ext

from sqliter.exceptions import EngineError

logger = logging.getLogger(__name__)

# Called with (primary result code, message) after each engine call
Recorder = Callable[[int, str], None]

SQLITE_OK = apsw.SQLITE_OK
SQLITE_ERROR = apsw.SQLITE_ERROR
SQLITE_MISUSE = apsw.SQLITE_MISUSE
SQLITE_CONSTRAINT = apsw.SQLITE_CONSTRAINT
SQLITE_RANGE = apsw.SQLITE_RANGE
SQLITE_ROW = apsw.SQLITE_ROW
SQLITE_DONE = apsw.SQLITE_DONE

SUCCESS_CODES = frozenset({SQLITE_OK, SQLITE_ROW, SQLITE_DONE})

# Canonical texts, as returned by sqlite3_errstr()
_ERROR_STRINGS: Dict[int, str] = {
    0: "not an error",
    1: "SQL logic error",
    3: "access permission denied",
    4: "query aborted",
    5: "database is locked",
    6: "database table is locked",
    7: "out of memory",
    8: "attempt to write a readonly database",
    9: "interrupted",
    10: "disk I/O error",
    11: "database disk image is malformed",
    12: "unknown operation",
    13: "database or disk is full",
    14: "unable to open database file",
    15: "locking protocol",
    17: "database schema has changed",
    18: "string or blob too big",
    19: "constraint failed",
    20: "datatype mismatch",
    21: "bad parameter or other API misuse",
    23: "authorization denied",
    25: "column index out of range",
    26: "file is not a database",
    27: "notification message",
    28: "warning message",
    100: "another row available",
    101: "no more rows available",
}


def error_string(code: int) -> str:
    """Return the canonical English text for a result code."""
    if code in _ERROR_STRINGS:
        return _ERROR_STRINGS[code]
    # Extended codes share the text of their primary code
    return _ERROR_STRINGS.get(code & 0xFF, "unknown error")


def result_name(code: int) -> str:
    """Return the symbolic name of a (possibly extended) result code."""
    return apsw.ext.result_string(code)


def _report(recorder: Optional[Recorder], code: int, message: str) -> None:
    if recorder is not None:
        recorder(code, message)


def engine_error(
    code: int,
    message: Optional[str] = None,
    recorder: Optional[Recorder] = None,
) -> EngineError:
    """
    Build, record and log the EngineError for a failing result code.

    Callers raise the returned error:

        raise engine_error(SQLITE_RANGE, recorder=self._recorder)
    """
    text = message if message is not None else error_string(code)
    _report(recorder, code & 0xFF, text)
    error = EngineError(code & 0xFF, text, extended_code=code)
    logger.error(f"SQLite error: {error}")
    return error


def check_result(
    code: int,
    message: Optional[str] = None,
    recorder: Optional[Recorder] = None,
) -> None:
    """
    Raise EngineError unless code is a success sentinel.

    Args:
        code: Result code reported by (or on behalf of) the engine
        message: Engine message; the canonical text for code when omitted
        recorder: Optional callback receiving the outcome

    Raises:
        EngineError: If code is not SQLITE_OK, SQLITE_ROW or SQLITE_DONE
    """
    if code in SUCCESS_CODES:
        _report(recorder, code, message if message is not None else error_string(code))
        return
    raise engine_error(code, message, recorder)


def engine_error_from(exc: apsw.Error) -> EngineError:
    """Build an EngineError from an exception raised by apsw."""
    code = getattr(exc, "result", None)
    if not isinstance(code, int) or code < 0:
        # apsw-level misuse (closed cursor, bad bindings, ...) has no SQLite code
        code = SQLITE_MISUSE
    code &= 0xFF
    extended = getattr(exc, "extendedresult", None)
    if not isinstance(extended, int) or extended < 0:
        extended = code

    message = str(exc)
    prefix = f"{type(exc).__name__}: "
    if message.startswith(prefix):
        message = message[len(prefix):]
    return EngineError(code, message or error_string(code), extended_code=extended)


@contextmanager
def translate_errors(recorder: Optional[Recorder] = None) -> Iterator[None]:
    """
    Run engine calls, converting apsw exceptions into EngineError:

        with translate_errors(self._record):
            cursor.execute(sql)

    Successful completion reports SQLITE_OK to the recorder. Any other
    exception raised inside the block (e.g. by a user-defined SQL function
    the engine called) becomes an EngineError with SQLITE_ERROR.
    """
    try:
        yield
    except EngineError as exc:
        _report(recorder, exc.code, exc.message)
        raise
    except apsw.Error as exc:
        error = engine_error_from(exc)
        _report(recorder, error.code, error.message)
        logger.error(f"SQLite error: {error}")
        raise error from exc
    except Exception as exc:
        error = EngineError(SQLITE_ERROR, str(exc) or error_string(SQLITE_ERROR))
        _report(recorder, error.code, error.message)
        logger.error(f"Error during SQLite call: {type(exc).__name__}: {exc}")
        raise error from exc
    else:
        _report(recorder, SQLITE_OK, error_string(SQLITE_OK))
