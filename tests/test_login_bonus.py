"""Tests for services/login_bonus.py."""

from datetime import datetime, timedelta

import pytest

from conftest import NOW
from tournament_ledger.database.models import LedgerReason, TournamentStatus
from tournament_ledger.utils.ledger_exceptions import OperationNotSupportedError, UserNotFoundError


@pytest.fixture
async def member(seed):
    user = await seed.user("ann")
    tournament = await seed.tournament()
    wallet = await seed.wallet(user, tournament, coins_remaining=1000)
    return user, tournament, wallet


class TestProcessLogin:
    async def test_first_login(self, db, login_service, member):
        user, tournament, wallet = member

        result = await login_service.process_login(user.id, login_at=NOW)

        assert result.streak == 1
        assert result.credited == 10
        assert result.tournament_id == tournament.id
        assert (await db.get_wallet(wallet.id)).coins_remaining == 1010

        latest = (await db.get_coin_history(wallet.id))[0]
        assert latest.reason == LedgerReason.LOGIN_BONUS
        assert latest.balance_after == 1010

    async def test_same_day_never_double_credits(self, db, login_service, member):
        user, _, wallet = member
        await login_service.process_login(user.id, login_at=NOW)

        again = await login_service.process_login(user.id, login_at=NOW + timedelta(hours=3))

        assert again.credited == 0
        assert again.already_processed
        assert again.streak == 1
        assert (await db.get_wallet(wallet.id)).coins_remaining == 1010

    async def test_consecutive_days_follow_schedule(self, db, login_service, member):
        user, _, wallet = member

        credits = []
        for day in range(8):
            result = await login_service.process_login(user.id, login_at=NOW + timedelta(days=day))
            credits.append(result.credited)

        assert credits == [10, 15, 20, 25, 30, 40, 60, 75]
        assert (await db.get_user(user.id)).login_streak == 8
        assert (await db.get_wallet(wallet.id)).coins_remaining == 1000 + sum(credits)

    async def test_missed_day_resets(self, login_service, member):
        user, _, _ = member
        await login_service.process_login(user.id, login_at=NOW)
        await login_service.process_login(user.id, login_at=NOW + timedelta(days=1))

        result = await login_service.process_login(user.id, login_at=NOW + timedelta(days=3))

        assert result.streak == 1
        assert result.credited == 10

    async def test_days_follow_competition_timezone(self, login_service, member):
        user, _, _ = member
        # 23:30 on the 14th, then 01:00 on the 15th, New York time
        await login_service.process_login(user.id, login_at=datetime(2026, 10, 15, 3, 30))
        result = await login_service.process_login(user.id, login_at=datetime(2026, 10, 15, 5, 0))

        assert result.streak == 2
        assert result.credited == 15

    async def test_no_current_wallet_still_saves_streak(self, db, seed, login_service):
        user = await seed.user("drifter")

        with pytest.raises(OperationNotSupportedError) as exc:
            await login_service.process_login(user.id, login_at=NOW)

        assert exc.value.streak == 1
        stored = await db.get_user(user.id)
        assert stored.login_streak == 1
        assert stored.last_login_date is not None

    async def test_finished_tournament_wallet_not_credited(self, db, seed, login_service):
        user = await seed.user("late")
        finished = await seed.tournament(status=TournamentStatus.COMPLETED)
        wallet = await seed.wallet(user, finished)

        with pytest.raises(OperationNotSupportedError):
            await login_service.process_login(user.id, login_at=NOW)

        assert (await db.get_wallet(wallet.id)).coins_remaining == 1000

    async def test_unknown_user(self, login_service):
        with pytest.raises(UserNotFoundError):
            await login_service.process_login(12345, login_at=NOW)
