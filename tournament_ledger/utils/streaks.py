"""
Daily login streak rules.
"""

from datetime import date, timedelta
from typing import Optional

from tournament_ledger.constants import BonusConstants


def next_login_streak(last_login_date: Optional[date], today: date, current_streak: int) -> Optional[int]:
    """
    Streak after a login on `today`.
    
    Returns None when the day was already counted (same calendar day, or a
    stored date later than today). A login on the day after the last one
    extends the streak; any other gap, or a first-ever login, starts at 1.
    """
    if last_login_date is not None and last_login_date >= today:
        return None
    if last_login_date is not None and last_login_date == today - timedelta(days=1):
        return (current_streak or 0) + 1
    return 1


def bonus_for_streak(streak: int) -> int:
    """Coins credited for a given streak day."""
    if streak < 1:
        return 0
    return BonusConstants.DAILY_SCHEDULE.get(streak, BonusConstants.CAPPED_BONUS)
