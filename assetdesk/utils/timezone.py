"""
Timezone Utilities.

Golden rules:
1. Database: always store UTC
2. API: return ISO 8601 in UTC
3. Comparisons: only between timezone-aware datetimes

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so anything read from storage goes through ``to_utc`` before
it is compared with ``utc_now()``.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

UTC = timezone.utc

# Injectable source of "now" used by the authorization services
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime, source_tz: Optional[str] = None) -> datetime:
    """
    Convert datetime to UTC.

    Naive values are interpreted in ``source_tz`` when given,
    otherwise they are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        if source_tz:
            dt = dt.replace(tzinfo=ZoneInfo(source_tz))
        else:
            dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """True when ``expires_at`` is set and not strictly in the future."""
    if expires_at is None:
        return False
    return to_utc(expires_at) <= to_utc(now)
