"""
Wager grading against a final score.

The spread is quoted as the host's line: a host backer adds it to the host
score, a guest backer subtracts it. A wager wins when the adjusted margin is
strictly positive; an exact tie is resolved by the configured PushPolicy.
"""

from enum import Enum

from tournament_ledger.database.models import BackedSide, WagerStatus


class PushPolicy(Enum):
    LOSS = "loss"      # Exact tie grades as a loss for the backer
    REFUND = "refund"  # Exact tie returns the stake

    @classmethod
    def from_config(cls, value: str) -> 'PushPolicy':
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Unknown push policy '{value}'")


def adjusted_margin(host_score: int, guest_score: int, spread: float, backed_side: BackedSide) -> float:
    """Margin of the backed side after applying the host's spread."""
    if backed_side == BackedSide.HOST:
        return host_score + spread - guest_score
    return guest_score - spread - host_score


def grade_wager(host_score: int, guest_score: int, spread: float, backed_side: BackedSide,
                push_policy: PushPolicy = PushPolicy.LOSS) -> WagerStatus:
    """Terminal status for a pending wager given the final score."""
    margin = adjusted_margin(host_score, guest_score, spread, backed_side)
    if margin > 0:
        return WagerStatus.WON
    if margin == 0 and push_policy == PushPolicy.REFUND:
        return WagerStatus.PUSH
    return WagerStatus.LOST


def settlement_credit(status: WagerStatus, amount: int) -> int:
    """Coins returned to the wallet for a settled wager."""
    if status == WagerStatus.WON:
        return amount * 2  # Stake back plus equal winnings
    if status == WagerStatus.PUSH:
        return amount
    return 0
