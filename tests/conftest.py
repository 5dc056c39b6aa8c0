"""Shared fixtures: a fresh SQLite file database per test plus seeding helpers."""

from datetime import date, datetime, timedelta

import pytest

from tournament_ledger.database.database import Database
from tournament_ledger.database.models import (
    User, Tournament, PayoutTier, Wallet, Game,
    SubscriptionStatus, TournamentStatus
)
from tournament_ledger.services import (
    WalletLedgerService, SettlementService, TournamentLifecycleService,
    PayoutDistributionService, LoginBonusService
)
from tournament_ledger.utils.time_utils import period_bounds

# Wednesday of the week that opened on Monday 2026-10-12 (America/New_York)
NOW = datetime(2026, 10, 14, 12, 0)
PERIOD_START = date(2026, 10, 12)


class Seeder:
    """Inserts rows directly, bypassing the services under test."""

    def __init__(self, db: Database):
        self.db = db
        self._user_seq = 0

    async def user(self, username=None, status=SubscriptionStatus.ACTIVE, **fields) -> User:
        self._user_seq += 1
        async with self.db.transaction() as session:
            user = User(
                username=username or f"player{self._user_seq}",
                display_name=fields.pop('display_name', None) or username or f"Player {self._user_seq}",
                subscription_status=status,
                **fields
            )
            session.add(user)
            await session.flush()
            await session.refresh(user)
            return user

    async def users(self, count: int, status=SubscriptionStatus.ACTIVE):
        async with self.db.transaction() as session:
            created = []
            for _ in range(count):
                self._user_seq += 1
                user = User(username=f"bulk{self._user_seq}", subscription_status=status)
                session.add(user)
                created.append(user)
            await session.flush()
            return created

    async def tournament(self, period_start=PERIOD_START, status=TournamentStatus.ACTIVE,
                         pool_cents=100000, tiers=((1, 0.25), (2, 0.15), (3, 0.05))) -> Tournament:
        start_at, end_at = period_bounds(period_start)
        async with self.db.transaction() as session:
            tournament = Tournament(
                period_start=period_start,
                start_at=start_at,
                end_at=end_at,
                status=status,
                total_prize_pool_cents=pool_cents,
                payout_tiers=[PayoutTier(rank=r, percent_of_pool=p) for r, p in tiers]
            )
            session.add(tournament)
            await session.flush()
            await session.refresh(tournament)
            return tournament

    async def wallet(self, user, tournament, coins_remaining=1000, coins_won=0,
                     set_current=True, **fields) -> Wallet:
        async with self.db.transaction() as session:
            wallet = Wallet(
                user_id=user.id,
                tournament_id=tournament.id,
                username=user.display_name or user.username,
                coins_remaining=coins_remaining,
                coins_won=coins_won,
                **fields
            )
            session.add(wallet)
            if set_current:
                db_user = await session.get(User, user.id)
                db_user.current_tournament_id = tournament.id
            await session.flush()
            await session.refresh(wallet)
            return wallet

    async def game(self, start_time=None, is_locked=False, host_team="Hawks", guest_team="Owls") -> Game:
        return await self.db.create_game(
            host_team, guest_team,
            start_time or NOW + timedelta(hours=2),
            is_locked=is_locked
        )


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def wallet_service(db):
    return WalletLedgerService(db.session_factory)


@pytest.fixture
def settlement_service(db):
    return SettlementService(db.session_factory)


@pytest.fixture
def lifecycle_service(db):
    return TournamentLifecycleService(db.session_factory)


@pytest.fixture
def payout_service(db):
    return PayoutDistributionService(db.session_factory)


@pytest.fixture
def login_service(db):
    return LoginBonusService(db.session_factory)
