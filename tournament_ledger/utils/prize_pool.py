"""
Prize pool sizing and payout tier construction for a new tournament period.
"""

import math
from fractions import Fraction
from typing import List

from tournament_ledger.constants import PayoutConstants
from tournament_ledger.data_models.standings import TierShare


def total_prize_pool_cents(subscriber_count: int, contribution_cents: int) -> int:
    """Prize pool funded by every active subscriber."""
    if subscriber_count < 0:
        raise ValueError("subscriber_count cannot be negative")
    return subscriber_count * contribution_cents


def paid_rank_count(subscriber_count: int) -> int:
    """Number of paid ranks: top 5% of subscribers, never fewer than three."""
    top_fraction = Fraction(str(PayoutConstants.PAID_FRACTION))
    return max(math.ceil(subscriber_count * top_fraction), PayoutConstants.MIN_PAID_RANKS)


def build_payout_tiers(subscriber_count: int) -> List[TierShare]:
    """
    Build the payout structure for a period.
    
    Ranks 1-3 take a fixed 25/15/5 split; the remaining 55% is divided evenly
    across ranks 4..N. With N == 3 the remainder stays undistributed.
    """
    tiers = [TierShare(rank=rank, percent_of_pool=share) for rank, share in PayoutConstants.HEAD_TIERS]
    
    paid_ranks = paid_rank_count(subscriber_count)
    extra_ranks = paid_ranks - len(tiers)
    if extra_ranks > 0:
        per_rank = Fraction(str(PayoutConstants.REMAINDER_SHARE)) / extra_ranks
        for rank in range(len(tiers) + 1, paid_ranks + 1):
            tiers.append(TierShare(rank=rank, percent_of_pool=float(per_rank)))
    
    return tiers
