"""Date parsing shared by the aggregation and formatting helpers."""

import math
from datetime import date, datetime, timezone
from typing import Any, Optional


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse a date-like value (ISO string, date, datetime) into a naive UTC datetime, or None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_date(value: Any) -> Optional[date]:
    parsed = to_datetime(value)
    return parsed.date() if parsed else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, floored."""
    return math.floor((end - start).total_seconds() / 86400)
