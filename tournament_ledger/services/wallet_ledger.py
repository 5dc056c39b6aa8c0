"""
Wallet ledger service.

Validates and applies wager placement and cancellation against a single
tournament wallet, and registers users into tournaments. Every balance change
is a guarded UPDATE plus a coin ledger entry in the same transaction, so a
failed validation leaves the wallet untouched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from tournament_ledger.config import Config
from tournament_ledger.services.base import BaseService
from tournament_ledger.database.models import (
    User, Tournament, Wallet, Wager, Game, CoinLedger,
    TournamentStatus, WagerStatus, BackedSide, LedgerReason
)
from tournament_ledger.database.wallet_operations import adjust_wallet
from tournament_ledger.data_models.results import WalletIntegrityReport
from tournament_ledger.utils.time_utils import utc_now, to_naive_utc
from tournament_ledger.utils.ledger_exceptions import (
    InvalidAmountError, InsufficientFundsError, GameNotFoundError, GameLockedError,
    WagerNotFoundError, CannotCancelError, TournamentNotFoundError, TournamentInactiveError,
    WalletNotFoundError, UserNotFoundError, ConcurrentUpdateConflictError
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WagerDraft:
    """What a wager is on, before it is staked."""
    game_id: int
    backed_side: BackedSide
    spread: float = 0.0


def betting_closed(game: Game, now: datetime) -> bool:
    """True when a game no longer accepts wagers."""
    if game.is_locked or game.is_final:
        return True
    cutoff = game.start_time - timedelta(minutes=Config.GAME_LOCK_MINUTES)
    return now >= cutoff


class WalletLedgerService(BaseService):
    """Wager placement, cancellation and wallet reads."""

    async def place_wager(self, wallet_id: int, amount: int, draft: WagerDraft,
                          now: Optional[datetime] = None) -> Wager:
        """
        Stake coins from a wallet on one game.

        Checks run in order: amount, wallet, tournament, game, betting cutoff,
        funds. On success the wager is created pending and the wallet's
        coins_remaining, coins_bet and wagers_placed move together.

        Raises:
            InvalidAmountError, WalletNotFoundError, TournamentNotFoundError,
            TournamentInactiveError, GameNotFoundError, GameLockedError,
            InsufficientFundsError
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(amount)

        now = to_naive_utc(now) if now else utc_now()

        async def _place_wager_attempt():
            async with self.get_session() as session:
                wallet = await session.get(Wallet, wallet_id)
                if wallet is None:
                    raise WalletNotFoundError(wallet_id=wallet_id)

                tournament = await session.get(Tournament, wallet.tournament_id)
                if tournament is None:
                    raise TournamentNotFoundError(wallet.tournament_id)
                if not tournament.is_active:
                    raise TournamentInactiveError(tournament.id, tournament.status.value)

                game = await session.get(Game, draft.game_id)
                if game is None:
                    raise GameNotFoundError(draft.game_id)
                if betting_closed(game, now):
                    raise GameLockedError(game.id)

                if wallet.coins_remaining < amount:
                    raise InsufficientFundsError(wallet_id, wallet.coins_remaining, amount)

                wager = Wager(
                    wallet_id=wallet.id,
                    user_id=wallet.user_id,
                    game_id=game.id,
                    tournament_id=tournament.id,
                    amount=amount,
                    spread=float(draft.spread),
                    backed_side=draft.backed_side,
                    status=WagerStatus.PENDING
                )
                session.add(wager)
                await session.flush()

                # Guarded decrement; a concurrent placement may have drained the wallet
                balance = await adjust_wallet(
                    session, wallet.id,
                    coins_delta=-amount,
                    bet_delta=amount,
                    placed_delta=1,
                    reason=LedgerReason.WAGER_PLACED,
                    wager_id=wager.id
                )
                if balance is None:
                    await session.refresh(wallet)
                    raise InsufficientFundsError(wallet_id, wallet.coins_remaining, amount)

                await session.execute(
                    update(User)
                    .where(User.id == wallet.user_id)
                    .values(lifetime_wagers=User.lifetime_wagers + 1)
                    .execution_options(synchronize_session=False)
                )

                await session.refresh(wager)
                logger.info(f"Wager {wager.id} placed: wallet {wallet_id}, game {game.id}, "
                            f"{amount} coins on {draft.backed_side.value}, balance {balance}")
                return wager

        return await self.execute_with_retry(_place_wager_attempt, max_retries=Config.BATCH_MAX_RETRIES)

    async def cancel_wager(self, wager_id: int) -> Wager:
        """
        Cancel a pending wager and refund its stake.

        The status change is a compare-and-swap from pending. If settlement
        moved the wager first, nothing is changed and
        ConcurrentUpdateConflictError is raised.
        """
        async with self.get_session() as session:
            wager = await session.get(Wager, wager_id)
            if wager is None:
                raise WagerNotFoundError(wager_id)
            if not wager.can_be_cancelled:
                raise CannotCancelError(wager_id, wager.status.value)

            result = await session.execute(
                update(Wager)
                .where((Wager.id == wager_id) & (Wager.status == WagerStatus.PENDING))
                .values(status=WagerStatus.CANCELLED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                logger.warning(f"Wager {wager_id} changed before cancellation could apply")
                raise ConcurrentUpdateConflictError("Wager", wager_id)

            await adjust_wallet(
                session, wager.wallet_id,
                coins_delta=wager.amount,
                bet_delta=-wager.amount,
                placed_delta=-1,
                reason=LedgerReason.WAGER_CANCELLED,
                wager_id=wager_id
            )

            await session.refresh(wager)
            logger.info(f"Wager {wager_id} cancelled, {wager.amount} coins returned to wallet {wager.wallet_id}")
            return wager

    async def register_for_tournament(self, user_id: int, tournament_id: Optional[int] = None) -> Wallet:
        """
        Create the user's wallet in a tournament with the starting grant.

        Defaults to the active tournament. Registering twice returns the
        existing wallet unchanged.
        """
        try:
            return await self._register_attempt(user_id, tournament_id)
        except IntegrityError:
            # Lost a race with a concurrent registration; the winner's wallet stands
            logger.warning(f"Concurrent registration for user {user_id}, returning existing wallet")
            async with self.get_session() as session:
                existing = await self._find_wallet(session, user_id, tournament_id)
                if existing is None:
                    raise
                return existing

    async def _register_attempt(self, user_id: int, tournament_id: Optional[int]) -> Wallet:
        async with self.get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            if tournament_id is None:
                tournament = await self._active_tournament(session)
            else:
                tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise TournamentNotFoundError(tournament_id)
            if tournament.status == TournamentStatus.COMPLETED:
                raise TournamentInactiveError(tournament.id, tournament.status.value)

            existing = await self._find_wallet(session, user_id, tournament.id)
            if existing is not None:
                return existing

            grant = Config.STARTING_GRANT
            wallet = Wallet(
                user_id=user.id,
                tournament_id=tournament.id,
                username=user.display_name or user.username,
                coins_remaining=grant,
                coins_bet=0,
                coins_won=0,
                wagers_placed=0,
                wagers_won=0,
                rank=0
            )
            session.add(wallet)
            await session.flush()

            session.add(CoinLedger(
                wallet_id=wallet.id,
                user_id=user.id,
                tournament_id=tournament.id,
                change_amount=grant,
                reason=LedgerReason.PERIOD_RESET,
                balance_after=grant
            ))

            await session.execute(
                update(Tournament)
                .where(Tournament.id == tournament.id)
                .values(participant_count=Tournament.participant_count + 1)
                .execution_options(synchronize_session=False)
            )
            user.tournaments_entered = (user.tournaments_entered or 0) + 1
            user.current_tournament_id = tournament.id

            await session.flush()
            await session.refresh(wallet)
            logger.info(f"User {user_id} registered in tournament {tournament.id} with {grant} coins")
            return wallet

    async def _active_tournament(self, session) -> Optional[Tournament]:
        result = await session.execute(
            select(Tournament)
            .where(Tournament.status == TournamentStatus.ACTIVE)
            .order_by(Tournament.start_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _find_wallet(self, session, user_id: int, tournament_id: Optional[int]) -> Optional[Wallet]:
        if tournament_id is None:
            tournament = await self._active_tournament(session)
            if tournament is None:
                return None
            tournament_id = tournament.id
        result = await session.execute(
            select(Wallet).where(
                (Wallet.user_id == user_id) &
                (Wallet.tournament_id == tournament_id)
            )
        )
        return result.scalar_one_or_none()

    # ============================================================================
    # Reads
    # ============================================================================

    async def get_wallet(self, wallet_id: int) -> Wallet:
        """Get a wallet by ID or raise WalletNotFoundError."""
        async with self.get_session() as session:
            wallet = await session.get(Wallet, wallet_id)
            if wallet is None:
                raise WalletNotFoundError(wallet_id=wallet_id)
            return wallet

    async def get_wallet_for_user(self, user_id: int, tournament_id: Optional[int] = None) -> Optional[Wallet]:
        """Get a user's wallet in a tournament (default: the active one)."""
        async with self.get_session() as session:
            return await self._find_wallet(session, user_id, tournament_id)

    async def get_wagers(self, user_id: int, tournament_id: Optional[int] = None,
                         status: Optional[WagerStatus] = None, limit: int = 50) -> List[Wager]:
        async with self.get_session() as session:
            query = select(Wager).where(Wager.user_id == user_id)
            if tournament_id is not None:
                query = query.where(Wager.tournament_id == tournament_id)
            if status is not None:
                query = query.where(Wager.status == status)
            query = query.order_by(Wager.id.desc()).limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def verify_wallet_integrity(self, wallet_id: int) -> WalletIntegrityReport:
        """Compare a wallet's bet counters with its non-cancelled wagers."""
        async with self.get_session() as session:
            wallet = await session.get(Wallet, wallet_id)
            if wallet is None:
                raise WalletNotFoundError(wallet_id=wallet_id)

            result = await session.execute(
                select(func.coalesce(func.sum(Wager.amount), 0), func.count(Wager.id))
                .where(Wager.wallet_id == wallet_id)
                .where(Wager.status != WagerStatus.CANCELLED)
            )
            calculated_bet, calculated_placed = result.one()

            report = WalletIntegrityReport(
                wallet_id=wallet_id,
                coins_remaining=wallet.coins_remaining,
                coins_bet=wallet.coins_bet,
                calculated_coins_bet=int(calculated_bet),
                wagers_placed=wallet.wagers_placed,
                calculated_wagers_placed=int(calculated_placed)
            )
            if not report.integrity_check:
                logger.warning(f"Wallet {wallet_id} failed integrity check: {report}")
            return report
