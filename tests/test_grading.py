"""Tests for utils/grading.py: spread grading and push handling."""

import pytest

from tournament_ledger.database.models import BackedSide, WagerStatus
from tournament_ledger.utils.grading import (
    PushPolicy,
    adjusted_margin,
    grade_wager,
    settlement_credit,
)


class TestAdjustedMargin:
    def test_host_backer_adds_spread(self):
        assert adjusted_margin(30, 20, 6.5, BackedSide.HOST) == pytest.approx(16.5)

    def test_guest_backer_subtracts_spread(self):
        assert adjusted_margin(24, 20, -3, BackedSide.GUEST) == pytest.approx(-1)

    def test_sides_are_opposite(self):
        host = adjusted_margin(17, 21, 2.5, BackedSide.HOST)
        guest = adjusted_margin(17, 21, 2.5, BackedSide.GUEST)
        assert host == pytest.approx(-guest)


class TestGradeWager:
    def test_host_covers(self):
        """Host wins by 10 with +6.5."""
        assert grade_wager(30, 20, 6.5, BackedSide.HOST) == WagerStatus.WON

    def test_host_fails_to_cover(self):
        """Host loses by 8 with +6.5."""
        assert grade_wager(20, 28, 6.5, BackedSide.HOST) == WagerStatus.LOST

    def test_underdog_guest_covers(self):
        assert grade_wager(24, 22, -3, BackedSide.GUEST) == WagerStatus.WON

    def test_push_is_loss_by_default(self):
        assert grade_wager(20, 17, -3, BackedSide.HOST) == WagerStatus.LOST

    def test_push_refund_policy(self):
        assert grade_wager(20, 17, -3, BackedSide.HOST, PushPolicy.REFUND) == WagerStatus.PUSH
        assert grade_wager(20, 17, -3, BackedSide.GUEST, PushPolicy.REFUND) == WagerStatus.PUSH

    def test_refund_policy_does_not_change_decided_games(self):
        assert grade_wager(21, 17, -3, BackedSide.HOST, PushPolicy.REFUND) == WagerStatus.WON


class TestSettlementCredit:
    def test_win_returns_stake_plus_winnings(self):
        assert settlement_credit(WagerStatus.WON, 500) == 1000

    def test_push_returns_stake(self):
        assert settlement_credit(WagerStatus.PUSH, 500) == 500

    def test_loss_credits_nothing(self):
        assert settlement_credit(WagerStatus.LOST, 500) == 0


class TestPushPolicy:
    def test_from_config_case_insensitive(self):
        assert PushPolicy.from_config("REFUND") is PushPolicy.REFUND
        assert PushPolicy.from_config("loss") is PushPolicy.LOSS

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            PushPolicy.from_config("void")
