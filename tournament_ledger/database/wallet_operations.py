"""
Session-aware wallet mutations.

Every balance change is a single guarded UPDATE against one wallet row
followed by a coin ledger entry written in the same transaction. Callers own
the session and the commit.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tournament_ledger.database.models import CoinLedger, LedgerReason, Wallet


async def adjust_wallet(session: AsyncSession, wallet_id: int, *,
                        coins_delta: int = 0,
                        bet_delta: int = 0,
                        won_delta: int = 0,
                        placed_delta: int = 0,
                        wins_delta: int = 0,
                        reason: Optional[LedgerReason] = None,
                        wager_id: Optional[int] = None) -> Optional[int]:
    """
    Apply counter increments to one wallet atomically.
    
    A negative coins_delta only applies when the wallet can cover it, so the
    balance can never be driven below zero by a concurrent writer.
    
    Returns:
        The balance after the update, or None if no row matched (missing
        wallet or insufficient coins).
    """
    stmt = update(Wallet).where(Wallet.id == wallet_id)
    if coins_delta < 0:
        stmt = stmt.where(Wallet.coins_remaining >= -coins_delta)
    
    stmt = stmt.values(
        coins_remaining=Wallet.coins_remaining + coins_delta,
        coins_bet=Wallet.coins_bet + bet_delta,
        coins_won=Wallet.coins_won + won_delta,
        wagers_placed=Wallet.wagers_placed + placed_delta,
        wagers_won=Wallet.wagers_won + wins_delta,
    ).execution_options(synchronize_session=False)
    
    result = await session.execute(stmt)
    if result.rowcount == 0:
        return None
    
    row = (await session.execute(
        select(Wallet.coins_remaining, Wallet.user_id, Wallet.tournament_id).where(Wallet.id == wallet_id)
    )).one()
    
    if reason is not None:
        session.add(CoinLedger(
            wallet_id=wallet_id,
            user_id=row.user_id,
            tournament_id=row.tournament_id,
            change_amount=coins_delta,
            reason=reason,
            balance_after=row.coins_remaining,
            related_wager_id=wager_id
        ))
    
    return row.coins_remaining
