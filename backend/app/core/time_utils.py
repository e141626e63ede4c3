from datetime import datetime, timedelta
from typing import Optional
import pytz

UTC = pytz.utc

# Smallest step the stores keep (microseconds); used to keep updated_at strictly increasing
TICK = timedelta(microseconds=1)

def get_utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(UTC)

def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a store-native timestamp to an aware UTC datetime.
    SQLite hands back naive values; those are taken to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return UTC.localize(dt)
    return dt.astimezone(UTC)

def advance_timestamp(previous: Optional[datetime]) -> datetime:
    """
    Next value for an updated_at column: now, but never at or before `previous`.
    """
    now = get_utc_now()
    previous = to_utc(previous)
    if previous is not None and now <= previous:
        return previous + TICK
    return now
