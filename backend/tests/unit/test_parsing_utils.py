"""Tests for shared provider parsing utilities."""

from datetime import datetime, timezone
from decimal import Decimal

from integrations.parsing_utils import parse_decimal, parse_unix_timestamp


class TestParseUnixTimestamp:
    """Tests for parse_unix_timestamp."""

    def test_none_returns_none(self):
        assert parse_unix_timestamp(None) is None

    def test_int(self):
        assert parse_unix_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_string(self):
        result = parse_unix_timestamp("1727697600")
        assert result == datetime(2024, 9, 30, 12, 0, tzinfo=timezone.utc)

    def test_garbage_returns_none(self):
        assert parse_unix_timestamp("not-a-number") is None


class TestParseDecimal:
    """Tests for parse_decimal."""

    def test_string(self):
        assert parse_decimal("532.10") == Decimal("532.10")

    def test_number(self):
        assert parse_decimal(12) == Decimal("12")

    def test_blank_and_none(self):
        assert parse_decimal(None) is None
        assert parse_decimal("  ") is None

    def test_invalid(self):
        assert parse_decimal("abc") is None
        assert parse_decimal("NaN") is None
        assert parse_decimal("Infinity") is None
