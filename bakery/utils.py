from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def iso_now(now: Optional[datetime] = None) -> str:
    # Use UTC ISO timestamps for consistency.
    now = now or datetime.now(timezone.utc)
    return now.replace(microsecond=0).isoformat()


def parse_date(value: Any) -> Optional[date]:
    """
    Calendar date of a date, datetime or ISO-8601 string ("2025-01-20",
    "2025-01-20T18:45:00Z"). Time of day and timezone are dropped.
    Returns None when the value can't be read as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    datetime of a datetime, date (midnight) or ISO-8601 string. Returns None
    when the value can't be read.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str) or not value.strip():
        return None

    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def to_int_id(value: Any) -> Optional[int]:
    """
    Record id from an int, or a string/Decimal holding a whole number.
    Bools, floats and fractional values are refused rather than truncated.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (str, Decimal)):
        d = to_decimal(value)
        if d is not None and d == d.to_integral_value():
            return int(d)
    return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Strict numeric parse for quantities and prices. Accepts int, float, Decimal
    and numeric strings; rejects bools, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float)):
        # str() keeps 10.5 as 10.5 instead of the binary float expansion
        d = Decimal(str(value))
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            d = Decimal(s)
        except InvalidOperation:
            return None
    else:
        return None

    if not d.is_finite():
        return None
    return d


def field_of(item: Any, name: str, default: Any = None) -> Any:
    # Batches arrive either as model objects or as plain dict rows.
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)
