"""
Shared helpers for the scoring service: calendar-day handling, timestamps,
and the half-up rounding used by every percentage shown to users.
"""

from __future__ import annotations
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
import math
from typing import Any, Optional


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def to_day(value: Any) -> Optional[date]:
    """
    Strip time-of-day from a datetime / date / ISO string.
    Aware datetimes are converted to UTC first so every caller agrees on
    where midnight falls.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return to_day(parse_timestamp(value))
    raise TypeError(f"Cannot convert {type(value).__name__} to a calendar day")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes (including Firestore's DatetimeWithNanoseconds) or ISO strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise TypeError(f"Cannot parse timestamp from {type(value).__name__}")


def to_yyyy_mm_dd(day: Optional[date]) -> Optional[str]:
    """Standardize day strings for storage and UI consistency."""
    return day.isoformat() if day else None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going away from zero (not banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_finite_number(value: Any) -> bool:
    """True for real ints/floats other than NaN and +/-inf (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False
