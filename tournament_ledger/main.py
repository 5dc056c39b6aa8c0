import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional

from tournament_ledger.config import Config
from tournament_ledger.database.database import Database
from tournament_ledger.services import (
    WalletLedgerService, SettlementService, TournamentLifecycleService,
    PayoutDistributionService, LoginBonusService
)
from tournament_ledger.utils.ledger_exceptions import LedgerException
from tournament_ledger.utils.logger import setup_logger

class LedgerEngine:
    """Wires the database and services together for jobs and in-process callers."""

    def __init__(self, database_url: Optional[str] = None, on_batch_failure: Optional[Callable] = None):
        self.db = Database(database_url)
        self.on_batch_failure = on_batch_failure
        # Handlers on the package logger cover every module logger below it
        setup_logger('tournament_ledger')
        self.logger = logging.getLogger(__name__)

        self.wallets: Optional[WalletLedgerService] = None
        self.settlement: Optional[SettlementService] = None
        self.lifecycle: Optional[TournamentLifecycleService] = None
        self.payouts: Optional[PayoutDistributionService] = None
        self.login_bonus: Optional[LoginBonusService] = None

    async def setup(self):
        """Initialize the database and construct services"""
        self.logger.info("Setting up ledger engine...")

        await self.db.initialize()
        session_factory = self.db.session_factory

        self.wallets = WalletLedgerService(session_factory)
        self.settlement = SettlementService(session_factory)
        self.lifecycle = TournamentLifecycleService(session_factory, on_batch_failure=self.on_batch_failure)
        self.payouts = PayoutDistributionService(session_factory, on_batch_failure=self.on_batch_failure)
        self.login_bonus = LoginBonusService(session_factory)

        self.logger.info("Ledger engine setup complete")

    async def close(self):
        """Cleanup on shutdown"""
        self.logger.info("Shutting down ledger engine...")
        await self.db.close()

    # ============================================================================
    # Scheduled jobs
    # ============================================================================

    async def run_rollover(self):
        """Period boundary job: open the new tournament, then pay out the closed ones"""
        rollover = await self.lifecycle.rollover()
        finalized = await self.payouts.finalize_due_tournaments()
        return rollover, finalized

    async def run_finalize(self, tournament_id: Optional[int] = None):
        if tournament_id is not None:
            return [await self.payouts.finalize_tournament(tournament_id)]
        return await self.payouts.finalize_due_tournaments()

    async def run_settlement(self, game_id: int, host_score: int, guest_score: int):
        return await self.settlement.record_outcome(game_id, host_score, guest_score)

    async def run_login(self, user_id: int):
        return await self.login_bonus.process_login(user_id)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Tournament wallet ledger jobs')
    subparsers = parser.add_subparsers(dest='job', required=True)

    subparsers.add_parser('rollover', help='Open the tournament for the current period')

    finalize = subparsers.add_parser('finalize', help='Rank wallets and record payouts')
    finalize.add_argument('--tournament', type=int, default=None,
                          help='Tournament ID (default: every tournament that is due)')

    settle = subparsers.add_parser('settle', help='Record a final score and settle wagers')
    settle.add_argument('game_id', type=int)
    settle.add_argument('host_score', type=int)
    settle.add_argument('guest_score', type=int)

    login = subparsers.add_parser('login', help='Process a daily login bonus')
    login.add_argument('user_id', type=int)

    return parser

async def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    Config.validate()

    engine = LedgerEngine()
    logger = engine.logger

    try:
        await engine.setup()

        if args.job == 'rollover':
            rollover, finalized = await engine.run_rollover()
            print(f"Tournament {rollover.tournament_id} ({'created' if rollover.created else 'unchanged'}), "
                  f"{len(finalized)} tournament(s) finalized")
        elif args.job == 'finalize':
            for result in await engine.run_finalize(args.tournament):
                print(f"Tournament {result.tournament_id}: {len(result.payouts)} payouts, "
                      f"{result.total_paid_cents / 100:.2f} distributed")
        elif args.job == 'settle':
            summary = await engine.run_settlement(args.game_id, args.host_score, args.guest_score)
            print(f"Game {summary.game_id}: {summary.won} won, {summary.lost} lost, "
                  f"{summary.pushed} pushed, {summary.skipped} skipped")
        elif args.job == 'login':
            result = await engine.run_login(args.user_id)
            print(f"User {result.user_id}: streak {result.streak}, +{result.credited} coins")

        return 0

    except LedgerException as e:
        logger.error(f"Job '{args.job}' failed: {e}")
        print(e.user_message)
        return 1

    finally:
        await engine.close()

def run():
    """Console script entry point"""
    exit_code = asyncio.run(main())
    sys.exit(exit_code)

if __name__ == "__main__":
    run()
