"""
Tournament Lifecycle Service

Opens and closes competition periods. A tournament moves strictly
upcoming -> active -> completed. The rollover job runs at each period
boundary and, as one transaction, completes the running tournament, sizes
the new prize pool from the active subscriber count, builds payout tiers and
gives every subscriber a fresh wallet.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from tournament_ledger.config import Config
from tournament_ledger.services.base import BaseService
from tournament_ledger.database.models import (
    User, Tournament, PayoutTier, Wallet, CoinLedger,
    SubscriptionStatus, TournamentStatus, LedgerReason
)
from tournament_ledger.data_models.results import RolloverResult
from tournament_ledger.utils.prize_pool import total_prize_pool_cents, build_payout_tiers
from tournament_ledger.utils.time_utils import utc_now, to_naive_utc, local_date, period_bounds
from tournament_ledger.utils.ledger_exceptions import TournamentNotFoundError, InvalidTransitionError

logger = logging.getLogger(__name__)

# Allowed forward moves of the tournament state machine
TRANSITIONS = {
    TournamentStatus.UPCOMING: TournamentStatus.ACTIVE,
    TournamentStatus.ACTIVE: TournamentStatus.COMPLETED,
}


class TournamentLifecycleService(BaseService):
    """Service for tournament period rollover and status transitions."""

    async def rollover(self, now: Optional[datetime] = None) -> RolloverResult:
        """
        Open the tournament for the period containing `now`.

        Re-running for a period that already has a running or finished
        tournament changes nothing and reports created=False. An upcoming
        tournament pre-created for the period is promoted instead of
        duplicated.

        Raises:
            TransactionError: if the batch keeps conflicting after retries
        """
        now = to_naive_utc(now) if now else utc_now()

        async def _rollover_attempt():
            try:
                return await self._rollover_once(now)
            except IntegrityError:
                # Another rollover committed the same period first
                async with self.get_session() as session:
                    period_start = await self._period_start_for(session, now)
                    logger.warning(f"Concurrent rollover detected for period {period_start}")
                    existing = await self._tournament_for_period(session, period_start)
                    if existing is None:
                        raise
                    return RolloverResult(tournament_id=existing.id, created=False,
                                          total_prize_pool_cents=existing.total_prize_pool_cents)

        result = await self.run_batch("rollover", _rollover_attempt)
        if result.created:
            logger.info(f"Rollover opened tournament {result.tournament_id}: "
                        f"{result.subscriber_count} subscribers, pool {result.total_prize_pool_cents} cents, "
                        f"{result.wallets_created} wallets created, {result.wallets_reset} reset, "
                        f"completed {result.completed_tournament_ids}")
        else:
            logger.info(f"Rollover skipped, tournament {result.tournament_id} already covers {now}")
        return result

    async def _rollover_once(self, now: datetime) -> RolloverResult:
        async with self.get_session() as session:
            period_start = await self._period_start_for(session, now)
            existing = await self._tournament_for_period(session, period_start)
            if existing is not None and existing.status != TournamentStatus.UPCOMING:
                return RolloverResult(tournament_id=existing.id, created=False,
                                      total_prize_pool_cents=existing.total_prize_pool_cents)

            running = await session.execute(
                select(Tournament).where(
                    (Tournament.status == TournamentStatus.ACTIVE) &
                    (Tournament.start_at <= now) &
                    (Tournament.end_at >= now)
                )
            )
            covering = running.scalars().first()
            if covering is not None:
                return RolloverResult(tournament_id=covering.id, created=False,
                                      total_prize_pool_cents=covering.total_prize_pool_cents)

            # 1. Close whatever is still running
            active_ids = (await session.execute(
                select(Tournament.id).where(Tournament.status == TournamentStatus.ACTIVE)
            )).scalars().all()
            if active_ids:
                await session.execute(
                    update(Tournament)
                    .where(Tournament.id.in_(active_ids) & (Tournament.status == TournamentStatus.ACTIVE))
                    .values(status=TournamentStatus.COMPLETED)
                    .execution_options(synchronize_session=False)
                )

            # 2. Size the prize pool from the subscriber directory
            subscribers = (await session.execute(
                select(User)
                .where(User.subscription_status == SubscriptionStatus.ACTIVE)
                .order_by(User.id)
            )).scalars().all()
            subscriber_count = len(subscribers)
            pool_cents = total_prize_pool_cents(subscriber_count, Config.PER_SUBSCRIBER_CONTRIBUTION_CENTS)

            # 3-4. Create (or promote) the tournament with its payout tiers
            start_at, end_at = period_bounds(period_start)
            if existing is None:
                tournament = Tournament(period_start=period_start, start_at=start_at, end_at=end_at)
                session.add(tournament)
            else:
                tournament = existing
                tournament.payout_tiers.clear()
                await session.flush()
            tournament.status = TournamentStatus.ACTIVE
            tournament.total_prize_pool_cents = pool_cents
            tournament.payout_tiers = [
                PayoutTier(rank=tier.rank, percent_of_pool=float(tier.percent_of_pool))
                for tier in build_payout_tiers(subscriber_count)
            ]
            await session.flush()

            # 5. Fresh wallet for every subscriber
            current_wallets = (await session.execute(
                select(Wallet).where(Wallet.tournament_id == tournament.id)
            )).scalars().all()
            wallets_by_user = {w.user_id: w for w in current_wallets}

            grant = Config.STARTING_GRANT
            wallets_created = 0
            wallets_reset = 0
            touched = []
            for user in subscribers:
                wallet = wallets_by_user.get(user.id)
                if wallet is None:
                    wallet = Wallet(
                        user_id=user.id,
                        tournament_id=tournament.id,
                        username=user.display_name or user.username,
                        coins_remaining=grant
                    )
                    session.add(wallet)
                    change = grant
                    wallets_created += 1
                else:
                    change = grant - wallet.coins_remaining
                    wallet.coins_remaining = grant
                    wallets_reset += 1
                wallet.coins_bet = 0
                wallet.coins_won = 0
                wallet.wagers_placed = 0
                wallet.wagers_won = 0
                wallet.rank = 0
                touched.append((wallet, change))

                # A wallet registered ahead of time was already counted
                if user.current_tournament_id != tournament.id:
                    user.tournaments_entered = (user.tournaments_entered or 0) + 1
                user.current_tournament_id = tournament.id

            await session.flush()
            for wallet, change in touched:
                if change == 0:
                    continue
                session.add(CoinLedger(
                    wallet_id=wallet.id,
                    user_id=wallet.user_id,
                    tournament_id=tournament.id,
                    change_amount=change,
                    reason=LedgerReason.PERIOD_RESET,
                    balance_after=grant
                ))

            tournament.participant_count = await session.scalar(
                select(func.count(Wallet.id)).where(Wallet.tournament_id == tournament.id)
            )
            await session.flush()

            return RolloverResult(
                tournament_id=tournament.id,
                created=True,
                completed_tournament_ids=list(active_ids),
                subscriber_count=subscriber_count,
                wallets_created=wallets_created,
                wallets_reset=wallets_reset,
                total_prize_pool_cents=pool_cents
            )

    async def _period_start_for(self, session, now: datetime) -> date:
        """Local day of `now`, moved past a period that closed earlier on that day."""
        period_start = local_date(now)
        day_open, _ = period_bounds(period_start, length_days=1)
        closed_today = await session.scalar(
            select(func.max(Tournament.end_at)).where(
                (Tournament.status != TournamentStatus.UPCOMING) &
                (Tournament.end_at >= day_open) &
                (Tournament.end_at < now)
            )
        )
        if closed_today is not None:
            period_start = max(period_start, local_date(closed_today) + timedelta(days=1))
        return period_start

    async def _tournament_for_period(self, session, period_start) -> Optional[Tournament]:
        result = await session.execute(
            select(Tournament)
            .options(selectinload(Tournament.payout_tiers))
            .where(Tournament.period_start == period_start)
        )
        return result.scalar_one_or_none()

    # ============================================================================
    # State machine
    # ============================================================================

    async def activate(self, tournament_id: int) -> Tournament:
        """Move an upcoming tournament to active."""
        return await self._transition(tournament_id, TournamentStatus.ACTIVE)

    async def complete(self, tournament_id: int) -> Tournament:
        """Move an active tournament to completed. Payouts are made by finalization."""
        return await self._transition(tournament_id, TournamentStatus.COMPLETED)

    async def _transition(self, tournament_id: int, target: TournamentStatus) -> Tournament:
        async with self.get_session() as session:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise TournamentNotFoundError(tournament_id)

            current = tournament.status
            if TRANSITIONS.get(current) != target:
                raise InvalidTransitionError(tournament_id, current.value, target.value)

            result = await session.execute(
                update(Tournament)
                .where((Tournament.id == tournament_id) & (Tournament.status == current))
                .values(status=target)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.refresh(tournament)
                raise InvalidTransitionError(tournament_id, tournament.status.value, target.value)

            await session.refresh(tournament)
            logger.info(f"Tournament {tournament_id} moved {current.value} -> {target.value}")
            return tournament

    # ============================================================================
    # Reads
    # ============================================================================

    async def get_active_tournament(self) -> Optional[Tournament]:
        """Most recently started active tournament, with payout tiers loaded."""
        async with self.get_session() as session:
            result = await session.execute(
                select(Tournament)
                .options(selectinload(Tournament.payout_tiers))
                .where(Tournament.status == TournamentStatus.ACTIVE)
                .order_by(Tournament.start_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_tournament(self, tournament_id: int) -> Tournament:
        async with self.get_session() as session:
            result = await session.execute(
                select(Tournament)
                .options(selectinload(Tournament.payout_tiers))
                .where(Tournament.id == tournament_id)
            )
            tournament = result.scalar_one_or_none()
            if tournament is None:
                raise TournamentNotFoundError(tournament_id)
            return tournament

    async def get_tournaments(self, status: Optional[TournamentStatus] = None) -> List[Tournament]:
        async with self.get_session() as session:
            query = select(Tournament).order_by(Tournament.start_at.desc())
            if status is not None:
                query = query.where(Tournament.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())
