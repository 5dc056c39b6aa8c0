"""
Payout Distribution Service

Closes a tournament: ranks every wallet by total score, splits the prize pool
across the payout tiers and records one pending payout per paid wallet. The
ranking and money split are done by RankingUtility; this service owns the
transaction that writes the results.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from tournament_ledger.services.base import BaseService
from tournament_ledger.database.models import (
    User, Tournament, Wallet, Payout, TournamentStatus, PayoutStatus
)
from tournament_ledger.data_models.standings import FinalizationResult, PayoutAllocation, StandingEntry
from tournament_ledger.utils.ranking import RankingUtility
from tournament_ledger.utils.time_utils import utc_now, to_naive_utc
from tournament_ledger.utils.ledger_exceptions import TournamentNotFoundError, InvalidTransitionError

logger = logging.getLogger(__name__)


class PayoutDistributionService(BaseService):
    """Service for final standings and prize distribution."""

    async def finalize_tournament(self, tournament_id: int, now: Optional[datetime] = None) -> FinalizationResult:
        """
        Rank wallets and distribute the prize pool for one tournament.

        Runs at most once per tournament: a finalized tournament returns its
        recorded payouts with already_finalized=True. Malformed wallets are
        left out of the ranking and reported in `skipped`.

        Raises:
            InvalidTransitionError: if the tournament is upcoming, or active
                and its period has not ended by `now`
        """
        now = to_naive_utc(now) if now else utc_now()

        async def _finalize_attempt():
            async with self.get_session() as session:
                tournament = (await session.execute(
                    select(Tournament)
                    .options(selectinload(Tournament.payout_tiers))
                    .where(Tournament.id == tournament_id)
                )).scalar_one_or_none()
                if tournament is None:
                    raise TournamentNotFoundError(tournament_id)

                wallets = (await session.execute(
                    select(Wallet).where(Wallet.tournament_id == tournament_id).order_by(Wallet.id)
                )).scalars().all()
                standings, rejected = RankingUtility.build_standings(wallets)

                if tournament.is_finalized:
                    payouts = await self._recorded_allocations(session, tournament_id)
                    return FinalizationResult(tournament_id, standings, payouts,
                                              skipped=rejected, already_finalized=True)

                if not self._is_due(tournament, now):
                    raise InvalidTransitionError(tournament_id, tournament.status.value,
                                                 TournamentStatus.COMPLETED.value)

                for error in rejected:
                    logger.warning(f"Skipping wallet in tournament {tournament_id}: {error}")

                allocations = RankingUtility.allocate_payouts(
                    standings, tournament.payout_tiers, tournament.total_prize_pool_cents
                )

                # Write ranks
                for entry in standings:
                    await session.execute(
                        update(Wallet)
                        .where(Wallet.id == entry.wallet_id)
                        .values(rank=entry.rank)
                        .execution_options(synchronize_session=False)
                    )

                # Record payouts and lifetime stats
                paid = [a for a in allocations if a.amount_cents > 0]
                users = {}
                if paid:
                    users = {u.id: u for u in (await session.execute(
                        select(User).where(User.id.in_([a.user_id for a in paid]))
                    )).scalars()}

                for allocation in paid:
                    session.add(Payout(
                        user_id=allocation.user_id,
                        tournament_id=tournament_id,
                        wallet_id=allocation.wallet_id,
                        amount_cents=allocation.amount_cents,
                        rank=allocation.rank,
                        status=PayoutStatus.PENDING
                    ))
                    user = users.get(allocation.user_id)
                    if user is None:
                        logger.warning(f"Payout for unknown user {allocation.user_id} in tournament {tournament_id}")
                        continue
                    user.total_winnings_cents = (user.total_winnings_cents or 0) + allocation.amount_cents
                    if user.best_finish is None or allocation.rank < user.best_finish:
                        user.best_finish = allocation.rank

                tournament.status = TournamentStatus.COMPLETED
                tournament.finalized_at = utc_now()

                return FinalizationResult(tournament_id, standings, paid, skipped=rejected)

        result = await self.run_batch(f"finalize tournament {tournament_id}", _finalize_attempt)
        if result.already_finalized:
            logger.info(f"Tournament {tournament_id} already finalized")
        else:
            logger.info(f"Tournament {tournament_id} finalized: {len(result.standings)} ranked, "
                        f"{len(result.payouts)} paid, {result.total_paid_cents} cents distributed, "
                        f"{len(result.skipped)} skipped")
        return result

    async def finalize_due_tournaments(self, now: Optional[datetime] = None) -> List[FinalizationResult]:
        """Finalize every unfinalized tournament that is completed or past its end."""
        now = to_naive_utc(now) if now else utc_now()

        async with self.get_session() as session:
            due_ids = (await session.execute(
                select(Tournament.id)
                .where(Tournament.finalized_at.is_(None))
                .where(
                    (Tournament.status == TournamentStatus.COMPLETED) |
                    ((Tournament.status == TournamentStatus.ACTIVE) & (Tournament.end_at < now))
                )
                .order_by(Tournament.end_at)
            )).scalars().all()

        results = []
        for tournament_id in due_ids:
            results.append(await self.finalize_tournament(tournament_id, now=now))
        return results

    async def get_standings(self, tournament_id: int) -> List[StandingEntry]:
        """Live ranked standings; nothing is written."""
        async with self.get_session() as session:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise TournamentNotFoundError(tournament_id)

            wallets = (await session.execute(
                select(Wallet).where(Wallet.tournament_id == tournament_id)
            )).scalars().all()

        standings, rejected = RankingUtility.build_standings(wallets)
        for error in rejected:
            logger.warning(f"Wallet left out of standings for tournament {tournament_id}: {error}")
        return standings

    async def get_payouts(self, tournament_id: int) -> List[Payout]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Payout)
                .where(Payout.tournament_id == tournament_id)
                .order_by(Payout.rank, Payout.user_id)
            )
            return list(result.scalars().all())

    async def _recorded_allocations(self, session, tournament_id: int) -> List[PayoutAllocation]:
        result = await session.execute(
            select(Payout)
            .where(Payout.tournament_id == tournament_id)
            .order_by(Payout.rank, Payout.user_id)
        )
        return [
            PayoutAllocation(wallet_id=p.wallet_id, user_id=p.user_id, rank=p.rank, amount_cents=p.amount_cents)
            for p in result.scalars()
        ]

    @staticmethod
    def _is_due(tournament: Tournament, now: datetime) -> bool:
        """Completed, or still active with its period over."""
        if tournament.status == TournamentStatus.COMPLETED:
            return True
        return tournament.is_active and tournament.end_at < now
