"""
Settlement service.

Resolves pending wagers once a game's final score is known. The outcome feed
may deliver the same result more than once; each wager moves out of pending
through a compare-and-swap, so repeated delivery never pays twice.
"""

import logging
from typing import Optional

from sqlalchemy import select, update

from tournament_ledger.config import Config
from tournament_ledger.services.base import BaseService
from tournament_ledger.database.models import Game, Wager, WagerStatus, LedgerReason
from tournament_ledger.database.wallet_operations import adjust_wallet
from tournament_ledger.data_models.results import SettlementSummary
from tournament_ledger.utils.grading import PushPolicy, grade_wager, settlement_credit
from tournament_ledger.utils.ledger_exceptions import GameNotFoundError, OperationNotSupportedError

logger = logging.getLogger(__name__)


class SettlementService(BaseService):
    """Grades and pays out the pending wagers on a game."""

    def __init__(self, session_factory, push_policy: Optional[PushPolicy] = None):
        super().__init__(session_factory)
        self.push_policy = push_policy or PushPolicy.from_config(Config.PUSH_POLICY)

    async def record_outcome(self, game_id: int, host_score: int, guest_score: int) -> SettlementSummary:
        """Store a game's final score and settle its pending wagers."""
        async with self.get_session() as session:
            game = await session.get(Game, game_id)
            if game is None:
                raise GameNotFoundError(game_id)

            if game.is_final and (game.host_score, game.guest_score) != (host_score, guest_score):
                logger.warning(f"Game {game_id} final score changed from "
                               f"{game.host_score}-{game.guest_score} to {host_score}-{guest_score}; "
                               f"already settled wagers keep their grade")

            game.host_score = host_score
            game.guest_score = guest_score
            game.is_final = True
            game.is_locked = True

        return await self.settle_game(game_id)

    async def settle_game(self, game_id: int) -> SettlementSummary:
        """
        Settle every pending wager on a game from its stored final score.

        Safe to call repeatedly: wagers already out of pending are not
        touched, and a wager whose pending guard is lost to a concurrent
        cancellation is counted as skipped.
        """
        async def _settle_attempt():
            async with self.get_session() as session:
                game = await session.get(Game, game_id)
                if game is None:
                    raise GameNotFoundError(game_id)
                if not game.is_final or game.host_score is None or game.guest_score is None:
                    raise OperationNotSupportedError("settlement", f"game {game_id} has no final score")

                result = await session.execute(
                    select(Wager.id, Wager.wallet_id, Wager.amount, Wager.spread, Wager.backed_side)
                    .where((Wager.game_id == game_id) & (Wager.status == WagerStatus.PENDING))
                    .order_by(Wager.id)
                )
                pending = result.all()

                summary = SettlementSummary(game_id=game_id)
                for wager in pending:
                    status = grade_wager(
                        game.host_score, game.guest_score,
                        wager.spread, wager.backed_side,
                        self.push_policy
                    )

                    swap = await session.execute(
                        update(Wager)
                        .where((Wager.id == wager.id) & (Wager.status == WagerStatus.PENDING))
                        .values(status=status)
                        .execution_options(synchronize_session=False)
                    )
                    if swap.rowcount == 0:
                        logger.warning(f"Wager {wager.id} left pending before settlement, skipping")
                        summary.skipped += 1
                        continue

                    credit = settlement_credit(status, wager.amount)
                    if status == WagerStatus.WON:
                        await adjust_wallet(
                            session, wager.wallet_id,
                            coins_delta=credit,
                            won_delta=wager.amount,
                            wins_delta=1,
                            reason=LedgerReason.WAGER_WON,
                            wager_id=wager.id
                        )
                        summary.won += 1
                    elif status == WagerStatus.PUSH:
                        await adjust_wallet(
                            session, wager.wallet_id,
                            coins_delta=credit,
                            reason=LedgerReason.WAGER_PUSH,
                            wager_id=wager.id
                        )
                        summary.pushed += 1
                    else:
                        summary.lost += 1
                    summary.coins_credited += credit

                return summary

        summary = await self.execute_with_retry(_settle_attempt, max_retries=Config.BATCH_MAX_RETRIES)
        logger.info(f"Game {game_id} settled: {summary.won} won, {summary.lost} lost, "
                    f"{summary.pushed} pushed, {summary.skipped} skipped, "
                    f"{summary.coins_credited} coins credited")
        return summary
