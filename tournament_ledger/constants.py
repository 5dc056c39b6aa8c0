"""
Ledger-wide constants for the tournament wallet engine.

This module contains the fixed business numbers used throughout the codebase:
prize-pool tier shapes and the daily login bonus schedule.
"""

class PayoutConstants:
    """Constants related to prize-pool tiers."""
    
    # Fixed head of the payout structure: rank -> share of pool
    HEAD_TIERS = ((1, 0.25), (2, 0.15), (3, 0.05))
    
    # Share left after the head, split evenly across ranks 4..N
    REMAINDER_SHARE = 0.55
    
    # Top fraction of subscribers that gets paid, never fewer than MIN_PAID_RANKS
    PAID_FRACTION = 0.05
    MIN_PAID_RANKS = 3
    
    # Precision used when turning stored float shares back into exact fractions
    SHARE_DENOMINATOR_LIMIT = 1_000_000

class BonusConstants:
    """Constants for the daily login bonus."""
    
    # Streak day -> coins; streaks beyond the table get CAPPED_BONUS
    DAILY_SCHEDULE = {
        1: 10,
        2: 15,
        3: 20,
        4: 25,
        5: 30,
        6: 40,
        7: 60,  # Full week
    }
    CAPPED_BONUS = 75
