"""
Daily login bonus service.

Tracks consecutive-day login streaks in the competition timezone and credits
bonus coins to the wallet of the user's current tournament.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from tournament_ledger.config import Config
from tournament_ledger.services.base import BaseService
from tournament_ledger.database.models import (
    User, Tournament, Wallet, LoginBonus, TournamentStatus, LedgerReason
)
from tournament_ledger.database.wallet_operations import adjust_wallet
from tournament_ledger.data_models.results import LoginBonusResult
from tournament_ledger.utils.streaks import next_login_streak, bonus_for_streak
from tournament_ledger.utils.time_utils import utc_now, to_naive_utc, local_date
from tournament_ledger.utils.ledger_exceptions import (
    UserNotFoundError, ConcurrentUpdateConflictError, OperationNotSupportedError
)

logger = logging.getLogger(__name__)


class LoginBonusService(BaseService):

    async def process_login(self, user_id: int, login_at: Optional[datetime] = None) -> LoginBonusResult:
        """
        Count a login and credit the day's bonus.

        Only the first login of a calendar day counts; later ones return
        credited == 0. The streak is saved even when the user has no wallet
        in a running tournament, in which case OperationNotSupportedError is
        raised afterwards carrying the new streak.
        """
        login_at = to_naive_utc(login_at) if login_at else utc_now()
        today = local_date(login_at)

        async def _login_attempt():
            async with self.get_session() as session:
                user = await session.get(User, user_id)
                if user is None:
                    raise UserNotFoundError(user_id)

                previous = user.last_login_date
                streak = next_login_streak(previous, today, user.login_streak)
                if streak is None:
                    return LoginBonusResult(user_id, user.login_streak, 0,
                                            tournament_id=user.current_tournament_id,
                                            already_processed=True), False

                # Compare-and-swap on the last login day
                guard = User.last_login_date.is_(None) if previous is None else User.last_login_date == previous
                swap = await session.execute(
                    update(User)
                    .where((User.id == user_id) & guard)
                    .values(login_streak=streak, last_login_date=today)
                    .execution_options(synchronize_session=False)
                )
                if swap.rowcount == 0:
                    raise ConcurrentUpdateConflictError("User", user_id)

                wallet = await self._current_wallet(session, user)
                if wallet is None:
                    return LoginBonusResult(user_id, streak, 0), True

                bonus = bonus_for_streak(streak)
                session.add(LoginBonus(
                    user_id=user_id,
                    tournament_id=wallet.tournament_id,
                    bonus_date=today,
                    streak=streak,
                    amount=bonus
                ))
                await adjust_wallet(session, wallet.id, coins_delta=bonus, reason=LedgerReason.LOGIN_BONUS)

                return LoginBonusResult(user_id, streak, bonus, tournament_id=wallet.tournament_id), False

        result, missing_wallet = await self.execute_with_retry(_login_attempt, max_retries=Config.BATCH_MAX_RETRIES)

        if missing_wallet:
            logger.warning(f"User {user_id} logged in on {today} (streak {result.streak}) without a current wallet")
            raise OperationNotSupportedError(
                "login bonus", "You are not entered in the current tournament.", streak=result.streak
            )
        if result.already_processed:
            logger.debug(f"User {user_id} already logged in on {today}")
        else:
            logger.info(f"User {user_id} login streak {result.streak}, credited {result.credited} coins")
        return result

    async def _current_wallet(self, session, user: User) -> Optional[Wallet]:
        if user.current_tournament_id is None:
            return None
        result = await session.execute(
            select(Wallet)
            .join(Tournament, Tournament.id == Wallet.tournament_id)
            .where(
                (Wallet.user_id == user.id) &
                (Wallet.tournament_id == user.current_tournament_id) &
                (Tournament.status == TournamentStatus.ACTIVE)
            )
        )
        return result.scalar_one_or_none()
