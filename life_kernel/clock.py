"""
Local-time helpers over epoch milliseconds.

Every function takes the instant and the timezone explicitly. Nothing here
reads the wall clock, which keeps reducers and projections replayable.
"""

from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "UTC"

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def _zone(tz: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz or DEFAULT_TIMEZONE)


def to_local(at_ms: int, tz: Optional[str] = None) -> datetime:
    """Convert epoch milliseconds to an aware datetime in `tz`."""
    return datetime.fromtimestamp(at_ms / SECOND_MS, tz=_zone(tz))


def to_epoch_ms(dt: datetime) -> int:
    return round(dt.timestamp() * SECOND_MS)


def local_day_start(at_ms: int, tz: Optional[str] = None) -> int:
    """Epoch ms of local midnight on the day containing `at_ms`."""
    local = to_local(at_ms, tz)
    return to_epoch_ms(datetime.combine(local.date(), time.min, tzinfo=local.tzinfo))


def same_local_day(a_ms: int, b_ms: int, tz: Optional[str] = None) -> bool:
    return to_local(a_ms, tz).date() == to_local(b_ms, tz).date()


def local_month_start(at_ms: int, tz: Optional[str] = None) -> int:
    local = to_local(at_ms, tz)
    first = local.date().replace(day=1)
    return to_epoch_ms(datetime.combine(first, time.min, tzinfo=local.tzinfo))


def local_week_bounds(at_ms: int, tz: Optional[str] = None) -> tuple[int, int]:
    """
    Monday-to-Sunday week containing `at_ms`.

    Returns (week_start, week_end) where week_end is the last millisecond
    of Sunday.
    """
    local = to_local(at_ms, tz)
    monday = local.date() - timedelta(days=local.weekday())
    start = datetime.combine(monday, time.min, tzinfo=local.tzinfo)
    next_monday = datetime.combine(monday + timedelta(days=7), time.min, tzinfo=local.tzinfo)
    return to_epoch_ms(start), to_epoch_ms(next_monday) - 1


def local_hour(at_ms: int, tz: Optional[str] = None) -> int:
    return to_local(at_ms, tz).hour


def local_weekday(at_ms: int, tz: Optional[str] = None) -> int:
    """Monday is 0, Sunday is 6."""
    return to_local(at_ms, tz).weekday()


def local_date_key(at_ms: int, tz: Optional[str] = None) -> str:
    return to_local(at_ms, tz).date().isoformat()
