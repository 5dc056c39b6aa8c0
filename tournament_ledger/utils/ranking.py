"""
Standings and payout allocation for tournament finalization.

Ranks are competition style (1, 1, 3, 4): tied totals share a rank and the
next distinct total is ranked one past the number of entries ahead of it.
Payouts pool every tier a tied group spans and split it evenly; all money is
handled in integer cents with cumulative rounding so that the sum paid equals
the pool share of the occupied tiers exactly.
"""

import math
from fractions import Fraction
from itertools import groupby
from typing import Dict, Iterable, List, Sequence, Tuple

from tournament_ledger.constants import PayoutConstants
from tournament_ledger.data_models.standings import PayoutAllocation, StandingEntry
from tournament_ledger.utils.ledger_exceptions import InvalidStandingsDataError


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _share_fraction(percent_of_pool) -> Fraction:
    if isinstance(percent_of_pool, Fraction):
        return percent_of_pool
    return Fraction(percent_of_pool).limit_denominator(PayoutConstants.SHARE_DENOMINATOR_LIMIT)


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


class RankingUtility:
    """Pure ranking and payout logic shared by finalization and live standings."""

    @staticmethod
    def validate_standing_row(wallet) -> StandingEntry:
        """
        Convert a stored wallet into an unranked StandingEntry.

        Raises InvalidStandingsDataError instead of defaulting missing or
        negative coin fields to zero.
        """
        wallet_id = getattr(wallet, 'id', None)
        user_id = getattr(wallet, 'user_id', None)
        if user_id is None:
            raise InvalidStandingsDataError(wallet_id, "missing user_id")

        coins_remaining = getattr(wallet, 'coins_remaining', None)
        if not _is_count(coins_remaining):
            raise InvalidStandingsDataError(wallet_id, f"coins_remaining={coins_remaining!r}")

        coins_won = getattr(wallet, 'coins_won', None)
        if not _is_count(coins_won):
            raise InvalidStandingsDataError(wallet_id, f"coins_won={coins_won!r}")

        return StandingEntry(
            wallet_id=wallet_id,
            user_id=user_id,
            username=getattr(wallet, 'username', None) or f"user-{user_id}",
            coins_remaining=coins_remaining,
            coins_won=coins_won,
        )

    @staticmethod
    def build_standings(wallets: Iterable) -> Tuple[List[StandingEntry], List[InvalidStandingsDataError]]:
        """Validate and rank wallets; malformed rows are returned separately, not raised."""
        entries = []
        rejected = []
        for wallet in wallets:
            try:
                entries.append(RankingUtility.validate_standing_row(wallet))
            except InvalidStandingsDataError as e:
                rejected.append(e)
        return RankingUtility.assign_competition_ranks(entries), rejected

    @staticmethod
    def assign_competition_ranks(entries: Iterable[StandingEntry]) -> List[StandingEntry]:
        """Sort by total score descending and assign competition ranks."""
        ordered = sorted(entries, key=lambda e: (-e.total_score, e.user_id))

        ranked = []
        current_rank = 0
        previous_score = None
        for position, entry in enumerate(ordered, start=1):
            if entry.total_score != previous_score:
                current_rank = position
                previous_score = entry.total_score
            ranked.append(StandingEntry(
                wallet_id=entry.wallet_id,
                user_id=entry.user_id,
                username=entry.username,
                coins_remaining=entry.coins_remaining,
                coins_won=entry.coins_won,
                rank=current_rank,
            ))
        return ranked

    @staticmethod
    def tier_shares(tiers: Iterable) -> Dict[int, Fraction]:
        """Map rank -> exact share from objects with `rank` and `percent_of_pool`."""
        shares: Dict[int, Fraction] = {}
        for tier in tiers:
            if tier.rank in shares:
                raise ValueError(f"Duplicate payout tier for rank {tier.rank}")
            share = _share_fraction(tier.percent_of_pool)
            if share < 0:
                raise ValueError(f"Negative payout share for rank {tier.rank}")
            shares[tier.rank] = share
        if sum(shares.values(), Fraction(0)) > 1:
            raise ValueError("Payout tiers exceed 100% of the pool")
        return shares

    @staticmethod
    def occupied_share(tiers: Iterable, entry_count: int) -> Fraction:
        """Total share of tiers whose rank some entry can occupy."""
        shares = RankingUtility.tier_shares(tiers)
        return sum((share for rank, share in shares.items() if rank <= entry_count), Fraction(0))

    @staticmethod
    def allocate_payouts(standings: Sequence[StandingEntry], tiers: Iterable,
                         total_prize_pool_cents: int) -> List[PayoutAllocation]:
        """
        Split the prize pool across ranked standings.

        A group of k entries tied at rank r pools the tiers for ranks
        r..r+k-1 and divides the group amount evenly; leftover cents go to the
        first entries of the group in standings order.
        """
        shares = RankingUtility.tier_shares(tiers)
        pool = Fraction(total_prize_pool_cents)

        allocations = []
        cumulative = Fraction(0)
        paid_so_far = 0
        for rank, group in groupby(standings, key=lambda e: e.rank):
            group = list(group)
            tied = len(group)
            group_share = sum((shares.get(r, Fraction(0)) for r in range(rank, rank + tied)), Fraction(0))
            if group_share == 0:
                continue

            cumulative += pool * group_share
            paid_through_group = _round_half_up(cumulative)
            group_cents = paid_through_group - paid_so_far
            paid_so_far = paid_through_group

            base, leftover = divmod(group_cents, tied)
            for index, entry in enumerate(group):
                allocations.append(PayoutAllocation(
                    wallet_id=entry.wallet_id,
                    user_id=entry.user_id,
                    rank=entry.rank,
                    amount_cents=base + (1 if index < leftover else 0),
                ))
        return allocations
