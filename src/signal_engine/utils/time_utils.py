"""
Time Utilities

Provides time-related utilities for:
- US equity session detection (America/New_York)
- Day-of-week codes used by position sizing
- Timestamp conversion
"""

from datetime import datetime, time, timezone

import pytz

from ..config.settings import Session


NEW_YORK = pytz.timezone("America/New_York")

DAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

# Session boundaries in New York local time, [start, end)
SESSION_WINDOWS = (
    (time(4, 0), time(9, 30), Session.PREMARKET),
    (time(9, 30), time(10, 30), Session.OPEN),
    (time(10, 30), time(15, 0), Session.MIDDAY),
    (time(15, 0), time(16, 0), Session.POWER_HOUR),
    (time(16, 0), time(20, 0), Session.AFTERHOURS),
)


class TimeUtils:
    """Core time utilities."""

    @staticmethod
    def from_unix_timestamp(timestamp: float) -> datetime:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    @staticmethod
    def to_new_york(timestamp: float) -> datetime:
        """Convert epoch seconds to an aware New York datetime (DST aware)."""
        return TimeUtils.from_unix_timestamp(timestamp).astimezone(NEW_YORK)

    @staticmethod
    def market_session(timestamp: float) -> Session:
        """US equity session for the given epoch time."""
        local = TimeUtils.to_new_york(timestamp)
        if local.weekday() >= 5:
            return Session.WEEKEND

        clock = local.time()
        for start, end, session in SESSION_WINDOWS:
            if start <= clock < end:
                return session
        return Session.CLOSED

    @staticmethod
    def day_code(timestamp: float) -> str:
        """Three-letter New York weekday code (MON..SUN)."""
        return DAY_CODES[TimeUtils.to_new_york(timestamp).weekday()]
