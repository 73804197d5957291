"""
Value coercion helpers.

Reproduces the conversions SQLite applies when a cell is read as a type other
than its storage class (sqlite3_column_int, _int64, _double, _text, _blob,
_bytes). Used by the unchecked ValueView and by Statement.get_size().
"""
from __future__ import annotations

import math
import re
from typing import Optional

from sqliter.types import INT64_MAX, INT64_MIN, NativeValue

# Leading integer / real prefixes, as accepted by sqlite3Atoi64 and sqlite3AtoF
_INT_PREFIX = re.compile(r"\s*([+-]?)(\d+)")
_REAL_PREFIX = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _as_str(value: bytes) -> str:
    return bytes(value).decode("utf-8", errors="replace")


def _clamp64(value: int) -> int:
    return max(INT64_MIN, min(INT64_MAX, value))


def parse_int_prefix(text: str) -> int:
    """
    Parse the leading integer of text the way the engine does.

    Leading whitespace and a sign are accepted, parsing stops at the first
    non-digit, overflow saturates at the 64-bit limits and text without
    digits yields 0.

    Args:
        text: Cell text

    Returns:
        Parsed 64-bit integer
    """
    match = _INT_PREFIX.match(text)
    if not match:
        return 0
    value = int(match.group(2))
    if match.group(1) == "-":
        value = -value
    return _clamp64(value)


def parse_real_prefix(text: str) -> float:
    """Parse the leading real number of text, 0.0 if there is none."""
    match = _REAL_PREFIX.match(text)
    if not match:
        return 0.0
    return float(match.group(0))


def format_real(value: float) -> str:
    """
    Render a double the way the engine converts REAL to TEXT ("%!.15g").

    The "!" flag always keeps a decimal point, so 1.0 renders as "1.0" and
    1e20 as "1.0e+20".
    """
    if math.isinf(value):
        return "Inf" if value > 0 else "-Inf"
    if math.isnan(value):
        return "NaN"
    text = "%.15g" % value
    mantissa, sep, exponent = text.partition("e")
    if "." not in mantissa:
        mantissa += ".0"
    return mantissa + sep + exponent


def to_int64(value: NativeValue) -> int:
    """Convert a cell to a 64-bit integer (sqlite3_column_int64)."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return 0
        if value <= INT64_MIN:
            return INT64_MIN
        if value >= INT64_MAX:
            return INT64_MAX
        return int(value)
    if isinstance(value, str):
        return parse_int_prefix(value)
    return parse_int_prefix(_as_str(value))


def to_int32(value: NativeValue) -> int:
    """Convert a cell to a 32-bit integer (sqlite3_column_int).

    The engine reads the 64-bit value and keeps its low 32 bits.
    """
    wide = to_int64(value)
    return ((wide + 2 ** 31) % 2 ** 32) - 2 ** 31


def to_double(value: NativeValue) -> float:
    """Convert a cell to a double (sqlite3_column_double)."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_real_prefix(value)
    return parse_real_prefix(_as_str(value))


def to_text(value: NativeValue) -> Optional[str]:
    """Convert a cell to text (sqlite3_column_text); NULL stays None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_real(value)
    return _as_str(value)


def to_blob(value: NativeValue) -> Optional[bytes]:
    """Convert a cell to raw bytes (sqlite3_column_blob); NULL stays None."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    text = to_text(value)
    return text.encode("utf-8") if text is not None else None


def byte_size(value: NativeValue) -> int:
    """
    Size in bytes of a cell (sqlite3_column_bytes).

    Numbers are measured through their text rendering, text through its
    UTF-8 encoding; NULL is 0.
    """
    blob = to_blob(value)
    return len(blob) if blob is not None else 0
