"""Tests for utils/prize_pool.py."""

import pytest

from tournament_ledger.utils.prize_pool import (
    total_prize_pool_cents,
    paid_rank_count,
    build_payout_tiers,
)


class TestPrizePool:
    def test_eighteen_dollars_per_subscriber(self):
        assert total_prize_pool_cents(100, 1800) == 180000

    def test_no_subscribers(self):
        assert total_prize_pool_cents(0, 1800) == 0

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            total_prize_pool_cents(-1, 1800)


class TestPaidRankCount:
    @pytest.mark.parametrize("subscribers,expected", [
        (0, 3),
        (1, 3),
        (60, 3),
        (61, 4),   # ceil(3.05)
        (100, 5),
        (1000, 50),
    ])
    def test_top_five_percent_minimum_three(self, subscribers, expected):
        assert paid_rank_count(subscribers) == expected


class TestBuildPayoutTiers:
    def test_head_only_for_small_field(self):
        tiers = build_payout_tiers(10)
        assert [(t.rank, t.percent_of_pool) for t in tiers] == [(1, 0.25), (2, 0.15), (3, 0.05)]
        assert sum(t.percent_of_pool for t in tiers) == pytest.approx(0.45)

    def test_remainder_split_evenly(self):
        tiers = build_payout_tiers(100)
        assert [t.rank for t in tiers] == [1, 2, 3, 4, 5]
        assert tiers[3].percent_of_pool == pytest.approx(0.275)
        assert tiers[4].percent_of_pool == pytest.approx(0.275)
        assert sum(t.percent_of_pool for t in tiers) == pytest.approx(1.0)

    def test_large_field_never_exceeds_pool(self):
        tiers = build_payout_tiers(1000)
        assert len(tiers) == 50
        assert sum(t.percent_of_pool for t in tiers) == pytest.approx(1.0)
        assert all(t.percent_of_pool > 0 for t in tiers)
