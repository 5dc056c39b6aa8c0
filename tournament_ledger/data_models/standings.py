"""
Standings data models for tournament finalization.

Provides immutable data transfer objects for ranked standings and payout
allocations.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class TierShare:
    """One (rank, percentOfPool) pair of a payout structure."""
    rank: int
    percent_of_pool: float


@dataclass(frozen=True)
class StandingEntry:
    """Single standings row."""
    wallet_id: int
    user_id: int
    username: str
    coins_remaining: int
    coins_won: int
    rank: int = 0

    @property
    def total_score(self) -> int:
        return self.coins_remaining + self.coins_won


@dataclass(frozen=True)
class PayoutAllocation:
    """Prize money assigned to one ranked wallet."""
    wallet_id: int
    user_id: int
    rank: int
    amount_cents: int


@dataclass(frozen=True)
class FinalizationResult:
    """Outcome of closing a tournament."""
    tournament_id: int
    standings: List[StandingEntry]
    payouts: List[PayoutAllocation]
    skipped: List = field(default_factory=list)  # InvalidStandingsDataError per malformed wallet
    already_finalized: bool = False

    @property
    def total_paid_cents(self) -> int:
        return sum(p.amount_cents for p in self.payouts)
