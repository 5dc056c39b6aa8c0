"""
Result objects returned by the ledger services.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class SettlementSummary:
    """Counts for one settlement pass over a game."""
    game_id: int
    won: int = 0
    lost: int = 0
    pushed: int = 0
    skipped: int = 0  # Wagers whose pending guard was lost to a concurrent writer
    coins_credited: int = 0

    @property
    def settled(self) -> int:
        return self.won + self.lost + self.pushed


@dataclass(frozen=True)
class RolloverResult:
    """Outcome of opening a new tournament period."""
    tournament_id: int
    created: bool
    completed_tournament_ids: List[int] = field(default_factory=list)
    subscriber_count: int = 0
    wallets_created: int = 0
    wallets_reset: int = 0
    total_prize_pool_cents: int = 0


@dataclass(frozen=True)
class LoginBonusResult:
    """Outcome of processing one login."""
    user_id: int
    streak: int
    credited: int
    tournament_id: Optional[int] = None
    already_processed: bool = False


@dataclass(frozen=True)
class WalletIntegrityReport:
    """Comparison of a wallet's counters with its wager history."""
    wallet_id: int
    coins_remaining: int
    coins_bet: int
    calculated_coins_bet: int
    wagers_placed: int
    calculated_wagers_placed: int

    @property
    def integrity_check(self) -> bool:
        return (
            self.coins_remaining >= 0
            and self.coins_bet == self.calculated_coins_bet
            and self.wagers_placed == self.calculated_wagers_placed
        )
