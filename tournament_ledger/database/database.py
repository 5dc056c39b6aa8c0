import logging
from datetime import datetime
from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy import select, func
from contextlib import asynccontextmanager

from tournament_ledger.config import Config
from tournament_ledger.database.models import (
    Base, User, Tournament, Wallet, Wager, Game, Payout, CoinLedger,
    SubscriptionStatus, TournamentStatus, WagerStatus
)

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self) -> async_sessionmaker:
        """Session factory handed to services"""
        if self.async_session is None:
            raise RuntimeError("Database.initialize() must be called first")
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context will be committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # ============================================================================
    # Subscriber directory
    # ============================================================================

    async def create_user(self, username: str, display_name: str = None,
                          subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE) -> User:
        """Create a new subscriber record"""
        async with self.transaction() as session:
            user = User(
                username=username,
                display_name=display_name or username,
                subscription_status=subscription_status
            )
            session.add(user)
            await session.flush()
            await session.refresh(user)
            return user

    async def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID"""
        async with self.get_session() as session:
            return await session.get(User, user_id)

    async def set_subscription_status(self, user_id: int, status: SubscriptionStatus):
        """Update a user's subscription status"""
        async with self.transaction() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise ValueError(f"User {user_id} not found")
            user.subscription_status = status

    async def count_active_subscribers(self) -> int:
        """Number of users with an active subscription"""
        async with self.get_session() as session:
            result = await session.execute(
                select(func.count(User.id)).where(User.subscription_status == SubscriptionStatus.ACTIVE)
            )
            return result.scalar() or 0

    # ============================================================================
    # Games
    # ============================================================================

    async def create_game(self, host_team: str, guest_team: str, start_time: datetime,
                          is_locked: bool = False) -> Game:
        """Create a game that wagers can target"""
        async with self.transaction() as session:
            game = Game(
                host_team=host_team,
                guest_team=guest_team,
                start_time=start_time,
                is_locked=is_locked
            )
            session.add(game)
            await session.flush()
            await session.refresh(game)
            return game

    async def get_game(self, game_id: int) -> Optional[Game]:
        """Get a game by ID"""
        async with self.get_session() as session:
            return await session.get(Game, game_id)

    async def set_game_locked(self, game_id: int, is_locked: bool = True):
        """Manually lock or unlock a game for betting"""
        async with self.transaction() as session:
            game = await session.get(Game, game_id)
            if game is None:
                raise ValueError(f"Game {game_id} not found")
            game.is_locked = is_locked

    # ============================================================================
    # Tournaments
    # ============================================================================

    async def get_tournament(self, tournament_id: int) -> Optional[Tournament]:
        """Get a tournament with its payout tiers"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Tournament)
                .options(selectinload(Tournament.payout_tiers))
                .where(Tournament.id == tournament_id)
            )
            return result.scalar_one_or_none()

    async def get_tournaments(self, status: Optional[TournamentStatus] = None) -> List[Tournament]:
        """Get tournaments, newest first, optionally filtered by status"""
        async with self.get_session() as session:
            query = select(Tournament).order_by(Tournament.start_at.desc())
            if status is not None:
                query = query.where(Tournament.status == status)
            result = await session.execute(query)
            return result.scalars().all()

    # ============================================================================
    # Wallets and wagers
    # ============================================================================

    async def get_wallet(self, wallet_id: int) -> Optional[Wallet]:
        """Get a wallet by ID"""
        async with self.get_session() as session:
            return await session.get(Wallet, wallet_id)

    async def get_wallet_for_user(self, user_id: int, tournament_id: int) -> Optional[Wallet]:
        """Get a user's wallet in a tournament"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Wallet).where(
                    (Wallet.user_id == user_id) &
                    (Wallet.tournament_id == tournament_id)
                )
            )
            return result.scalar_one_or_none()

    async def get_tournament_wallets(self, tournament_id: int) -> List[Wallet]:
        """Get every wallet registered in a tournament"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Wallet).where(Wallet.tournament_id == tournament_id).order_by(Wallet.id)
            )
            return result.scalars().all()

    async def get_wager(self, wager_id: int) -> Optional[Wager]:
        """Get a wager by ID"""
        async with self.get_session() as session:
            return await session.get(Wager, wager_id)

    async def get_wagers(self, user_id: int, tournament_id: Optional[int] = None,
                         status: Optional[WagerStatus] = None, limit: int = 50) -> List[Wager]:
        """Get a user's wagers, newest first"""
        async with self.get_session() as session:
            query = select(Wager).where(Wager.user_id == user_id)
            if tournament_id is not None:
                query = query.where(Wager.tournament_id == tournament_id)
            if status is not None:
                query = query.where(Wager.status == status)
            query = query.order_by(Wager.created_at.desc(), Wager.id.desc()).limit(limit)
            result = await session.execute(query)
            return result.scalars().all()

    async def get_pending_wagers_for_game(self, game_id: int) -> List[Wager]:
        """Get every pending wager on a game"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Wager).where(
                    (Wager.game_id == game_id) &
                    (Wager.status == WagerStatus.PENDING)
                ).order_by(Wager.id)
            )
            return result.scalars().all()

    # ============================================================================
    # Payouts and ledger
    # ============================================================================

    async def get_payouts(self, tournament_id: int) -> List[Payout]:
        """Get payout records for a tournament, best rank first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Payout)
                .where(Payout.tournament_id == tournament_id)
                .order_by(Payout.rank, Payout.user_id)
            )
            return result.scalars().all()

    async def get_coin_history(self, wallet_id: int, limit: int = 20) -> List[CoinLedger]:
        """Get coin ledger entries for a wallet, newest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(CoinLedger)
                .where(CoinLedger.wallet_id == wallet_id)
                .order_by(CoinLedger.id.desc())
                .limit(limit)
            )
            return result.scalars().all()
