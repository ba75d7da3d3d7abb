"""UTC helpers for ledger timestamps."""
from datetime import datetime, timezone
from typing import Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC value.

    Naive values are taken to be UTC already (SQLite hands back stored
    timestamps without an offset); aware values are converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string with an explicit +00:00 offset, or None."""
    value = as_utc(value)
    return value.isoformat() if value else None
