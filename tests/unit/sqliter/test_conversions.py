"""
Tests for sqliter.conversions (engine-style coercion of cell values).
"""
from __future__ import annotations

import pytest

from sqliter import conversions
from sqliter.types import INT64_MAX, INT64_MIN

pytestmark = pytest.mark.unit


class TestIntegerParsing:
    @pytest.mark.parametrize("text,expected", [
        ("12abc", 12),
        ("  -7 apples", -7),
        ("+3", 3),
        ("abc", 0),
        ("", 0),
        ("3.9", 3),
    ])
    def test_parse_int_prefix(self, text, expected):
        assert conversions.parse_int_prefix(text) == expected

    def test_parse_int_prefix_saturates(self):
        assert conversions.parse_int_prefix("9" * 30) == INT64_MAX
        assert conversions.parse_int_prefix("-" + "9" * 30) == INT64_MIN


class TestRealParsing:
    @pytest.mark.parametrize("text,expected", [
        ("2.5kg", 2.5),
        (" -1e3x", -1000.0),
        (".5", 0.5),
        ("x1", 0.0),
    ])
    def test_parse_real_prefix(self, text, expected):
        assert conversions.parse_real_prefix(text) == expected


class TestFormatReal:
    @pytest.mark.parametrize("value,expected", [
        (1.0, "1.0"),
        (7.5, "7.5"),
        (-0.25, "-0.25"),
        (1e20, "1.0e+20"),
        (float("inf"), "Inf"),
        (float("-inf"), "-Inf"),
    ])
    def test_format_real(self, value, expected):
        assert conversions.format_real(value) == expected


class TestCellConversions:
    def test_to_int64_from_float_truncates(self):
        assert conversions.to_int64(3.99) == 3
        assert conversions.to_int64(-3.99) == -3

    def test_to_int64_from_float_saturates(self):
        assert conversions.to_int64(1e30) == INT64_MAX
        assert conversions.to_int64(-1e30) == INT64_MIN
        assert conversions.to_int64(float("nan")) == 0

    def test_to_int64_from_blob(self):
        assert conversions.to_int64(b"42") == 42

    def test_to_int32_wraps(self):
        assert conversions.to_int32(2 ** 31) == -(2 ** 31)
        assert conversions.to_int32(2 ** 32 + 5) == 5
        assert conversions.to_int32(-1) == -1

    def test_to_double(self):
        assert conversions.to_double(None) == 0.0
        assert conversions.to_double(3) == 3.0
        assert conversions.to_double("1.5e1") == 15.0

    def test_to_text(self):
        assert conversions.to_text(None) is None
        assert conversions.to_text(10) == "10"
        assert conversions.to_text(0.5) == "0.5"
        assert conversions.to_text(b"hi") == "hi"

    def test_to_blob(self):
        assert conversions.to_blob(None) is None
        assert conversions.to_blob("é") == "é".encode("utf-8")
        assert conversions.to_blob(memoryview(b"ab")) == b"ab"

    @pytest.mark.parametrize("value,expected", [
        (None, 0),
        (123, 3),
        (-5, 2),
        (1.5, 3),
        ("héllo", 6),
        (b"\x00\x01", 2),
    ])
    def test_byte_size(self, value, expected):
        assert conversions.byte_size(value) == expected
