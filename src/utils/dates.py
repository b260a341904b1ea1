"""Lenient date helpers used by the derivation passes.

Source records carry dates as strings in a few shapes (YYYY-MM-DD, ISO
timestamps, DD/MM/YYYY from older meeting forms). Every helper returns None
instead of raising so one bad record never breaks a whole pass.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a date-ish value into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    text = str(value).strip()
    if not text:
        return None

    if "/" in text:
        parts = text.split("/")
        if len(parts) == 3:
            day, month, year = parts
            try:
                return datetime(int(year), int(month), int(day), tzinfo=timezone.utc)
            except ValueError:
                return None
        return None

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-ish value into a calendar date."""
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def year_month(moment: datetime) -> str:
    """Return the YYYY-MM prefix used for current-month matching."""
    return ensure_aware(moment).astimezone(timezone.utc).strftime("%Y-%m")
