"""Tests for services/settlement.py."""

import pytest
from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import NOW
from tournament_ledger.database.models import Wager, BackedSide, WagerStatus, LedgerReason
from tournament_ledger.services import SettlementService, WagerDraft
from tournament_ledger.utils.grading import PushPolicy
from tournament_ledger.utils.ledger_exceptions import GameNotFoundError, OperationNotSupportedError


@pytest.fixture
async def staked(seed, wallet_service):
    """A wallet with 500 coins, all of it on the host at +6.5."""
    user = await seed.user("ann")
    tournament = await seed.tournament()
    wallet = await seed.wallet(user, tournament, coins_remaining=500)
    game = await seed.game()
    wager = await wallet_service.place_wager(
        wallet.id, 500, WagerDraft(game.id, BackedSide.HOST, 6.5), now=NOW
    )
    return wallet, game, wager


# ============================================================================
# Grading against the stored wallet
# ============================================================================


class TestSettleOutcome:
    async def test_host_covers_spread(self, db, settlement_service, staked):
        wallet, game, wager = staked

        summary = await settlement_service.record_outcome(game.id, 30, 20)

        assert (summary.won, summary.lost, summary.pushed) == (1, 0, 0)
        assert summary.coins_credited == 1000
        stored = await db.get_wallet(wallet.id)
        assert stored.coins_remaining == 1000
        assert stored.coins_won == 500
        assert stored.wagers_won == 1
        assert (await db.get_wager(wager.id)).status == WagerStatus.WON

    async def test_host_loses_by_eight(self, db, settlement_service, staked):
        wallet, game, wager = staked

        summary = await settlement_service.record_outcome(game.id, 20, 28)

        assert summary.lost == 1
        stored = await db.get_wallet(wallet.id)
        assert stored.coins_remaining == 0
        assert stored.coins_won == 0
        assert stored.coins_bet == 500
        assert (await db.get_wager(wager.id)).status == WagerStatus.LOST

    async def test_records_final_score(self, db, settlement_service, staked):
        _, game, _ = staked
        await settlement_service.record_outcome(game.id, 30, 20)

        stored = await db.get_game(game.id)
        assert stored.is_final
        assert stored.is_locked
        assert (stored.host_score, stored.guest_score) == (30, 20)

    async def test_win_writes_ledger_entry(self, db, settlement_service, staked):
        wallet, game, wager = staked
        await settlement_service.record_outcome(game.id, 30, 20)

        latest = (await db.get_coin_history(wallet.id))[0]
        assert latest.reason == LedgerReason.WAGER_WON
        assert latest.change_amount == 1000
        assert latest.balance_after == 1000
        assert latest.related_wager_id == wager.id

    async def test_mixed_sides(self, db, seed, wallet_service, settlement_service):
        tournament = await seed.tournament()
        game = await seed.game()
        host_fan = await seed.wallet(await seed.user("h"), tournament)
        guest_fan = await seed.wallet(await seed.user("g"), tournament)

        await wallet_service.place_wager(host_fan.id, 200, WagerDraft(game.id, BackedSide.HOST, -3), now=NOW)
        await wallet_service.place_wager(guest_fan.id, 300, WagerDraft(game.id, BackedSide.GUEST, -3), now=NOW)

        # Host wins by 2, does not cover -3
        summary = await settlement_service.record_outcome(game.id, 24, 22)

        assert (summary.won, summary.lost) == (1, 1)
        assert (await db.get_wallet(host_fan.id)).coins_remaining == 800
        assert (await db.get_wallet(guest_fan.id)).coins_remaining == 1300


# ============================================================================
# Idempotence and races
# ============================================================================


class TestSettlementIdempotence:
    async def test_duplicate_delivery_is_noop(self, db, settlement_service, staked):
        wallet, game, _ = staked

        await settlement_service.record_outcome(game.id, 30, 20)
        before = await db.get_wallet(wallet.id)
        second = await settlement_service.record_outcome(game.id, 30, 20)
        after = await db.get_wallet(wallet.id)

        assert second.settled == 0
        assert second.coins_credited == 0
        assert (after.coins_remaining, after.coins_won, after.wagers_won) == \
               (before.coins_remaining, before.coins_won, before.wagers_won)
        assert len(await db.get_coin_history(wallet.id)) == 2

    async def test_settle_game_twice(self, db, settlement_service, staked):
        wallet, game, _ = staked
        await settlement_service.record_outcome(game.id, 30, 20)

        again = await settlement_service.settle_game(game.id)

        assert again.settled == 0
        assert (await db.get_wallet(wallet.id)).coins_remaining == 1000

    async def test_cancellation_after_read_is_skipped(self, db, wallet_service, settlement_service,
                                                      staked, monkeypatch):
        wallet, game, wager = staked

        original_execute = AsyncSession.execute
        fired = []

        async def execute_then_cancel(session, statement, *args, **kwargs):
            result = await original_execute(session, statement, *args, **kwargs)
            if isinstance(statement, Select) and not fired \
                    and statement.column_descriptions[0]["entity"] is Wager:
                fired.append(True)
                await wallet_service.cancel_wager(wager.id)
            return result

        monkeypatch.setattr(AsyncSession, "execute", execute_then_cancel)

        summary = await settlement_service.record_outcome(game.id, 30, 20)

        assert fired == [True]
        assert (summary.won, summary.skipped) == (0, 1)
        assert summary.coins_credited == 0
        assert (await db.get_wager(wager.id)).status == WagerStatus.CANCELLED
        stored = await db.get_wallet(wallet.id)
        assert stored.coins_remaining == 500
        assert stored.coins_won == 0
        assert stored.wagers_won == 0
        history = await db.get_coin_history(wallet.id)
        assert [h.reason for h in history] == [LedgerReason.WAGER_CANCELLED, LedgerReason.WAGER_PLACED]

    async def test_cancelled_wagers_untouched(self, db, seed, wallet_service, settlement_service):
        tournament = await seed.tournament()
        game = await seed.game()
        wallet = await seed.wallet(await seed.user("c"), tournament)
        keep = await wallet_service.place_wager(wallet.id, 100, WagerDraft(game.id, BackedSide.HOST), now=NOW)
        drop = await wallet_service.place_wager(wallet.id, 100, WagerDraft(game.id, BackedSide.HOST), now=NOW)
        await wallet_service.cancel_wager(drop.id)

        summary = await settlement_service.record_outcome(game.id, 7, 3)

        assert summary.won == 1
        assert (await db.get_wager(drop.id)).status == WagerStatus.CANCELLED
        assert (await db.get_wager(keep.id)).status == WagerStatus.WON
        assert (await db.get_wallet(wallet.id)).coins_remaining == 1100

    async def test_requires_final_score(self, seed, settlement_service):
        game = await seed.game()
        with pytest.raises(OperationNotSupportedError):
            await settlement_service.settle_game(game.id)

    async def test_unknown_game(self, settlement_service):
        with pytest.raises(GameNotFoundError):
            await settlement_service.record_outcome(404, 1, 0)


# ============================================================================
# Push policy
# ============================================================================


class TestPushPolicy:
    async def test_half_point_spread_never_pushes(self, db, settlement_service, staked):
        wallet, game, _ = staked

        summary = await settlement_service.record_outcome(game.id, 20, 27)

        assert (summary.lost, summary.pushed) == (1, 0)
        assert (await db.get_wallet(wallet.id)).coins_remaining == 0

    async def test_exact_tie_loses_under_loss_policy(self, db, seed, wallet_service, settlement_service):
        tournament = await seed.tournament()
        game = await seed.game()
        wallet = await seed.wallet(await seed.user("p"), tournament)
        wager = await wallet_service.place_wager(wallet.id, 100, WagerDraft(game.id, BackedSide.HOST, -3), now=NOW)

        summary = await settlement_service.record_outcome(game.id, 20, 17)

        assert summary.lost == 1
        assert (await db.get_wager(wager.id)).status == WagerStatus.LOST
        assert (await db.get_wallet(wallet.id)).coins_remaining == 900

    async def test_exact_tie_refunded_under_refund_policy(self, db, seed, wallet_service):
        service = SettlementService(db.session_factory, push_policy=PushPolicy.REFUND)
        tournament = await seed.tournament()
        game = await seed.game()
        wallet = await seed.wallet(await seed.user("q"), tournament)
        wager = await wallet_service.place_wager(wallet.id, 100, WagerDraft(game.id, BackedSide.GUEST, -3), now=NOW)

        summary = await service.record_outcome(game.id, 20, 17)

        assert summary.pushed == 1
        assert summary.coins_credited == 100
        assert (await db.get_wager(wager.id)).status == WagerStatus.PUSH
        stored = await db.get_wallet(wallet.id)
        assert stored.coins_remaining == 1000
        assert stored.coins_won == 0
        assert stored.wagers_won == 0
        assert stored.coins_bet == 100
