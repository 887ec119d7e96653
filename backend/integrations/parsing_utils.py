"""Shared parsing utilities for provider payloads.

SimpleFIN reports balances as strings and dates as Unix timestamps; these
helpers normalise both.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_unix_timestamp(value) -> datetime | None:
    """Parse a Unix epoch timestamp to a UTC-aware datetime.

    Args:
        value: An int, float, string-encoded number, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, TypeError, OSError):
        return None


def parse_decimal(value) -> Decimal | None:
    """Parse a numeric string or number to Decimal.

    Args:
        value: A str, int, float, Decimal, or None.

    Returns:
        The Decimal value, or None if missing, blank, or not a finite number.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result
