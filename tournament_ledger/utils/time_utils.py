"""
Calendar helpers for tournament periods.

Timestamps are stored as naive UTC. Calendar days (login streaks, period
boundaries) are taken in Config.TOURNAMENT_TIMEZONE.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

import pytz

from tournament_ledger.config import Config


def utc_now() -> datetime:
    """Current time as naive UTC, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(moment: datetime) -> datetime:
    """Normalize an aware or naive-UTC datetime to naive UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(moment: Optional[datetime] = None, timezone_name: Optional[str] = None) -> date:
    """Calendar date of a moment in the competition timezone."""
    tz = pytz.timezone(timezone_name or Config.TOURNAMENT_TIMEZONE)
    moment = to_naive_utc(moment or utc_now())
    return pytz.utc.localize(moment).astimezone(tz).date()


def period_bounds(period_start: date, length_days: Optional[int] = None,
                  timezone_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Start and end of a tournament period as naive UTC.
    
    The period opens at local midnight of period_start and closes at
    23:59:59.999 on its last local day.
    """
    tz = pytz.timezone(timezone_name or Config.TOURNAMENT_TIMEZONE)
    length = length_days or Config.TOURNAMENT_LENGTH_DAYS
    
    start_local = tz.localize(datetime.combine(period_start, time.min))
    last_day = period_start + timedelta(days=length - 1)
    end_local = tz.localize(datetime.combine(last_day, time(23, 59, 59, 999000)))
    
    return to_naive_utc(start_local), to_naive_utc(end_local)
