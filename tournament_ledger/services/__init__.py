"""
Services package for the tournament ledger.

Each service is stateless apart from its session factory and is safe to
construct per request or share across handlers.
"""

from .base import BaseService
from .wallet_ledger import WalletLedgerService, WagerDraft
from .settlement import SettlementService
from .tournament_lifecycle import TournamentLifecycleService
from .payout_distribution import PayoutDistributionService
from .login_bonus import LoginBonusService

__all__ = [
    'BaseService',
    'WalletLedgerService',
    'WagerDraft',
    'SettlementService',
    'TournamentLifecycleService',
    'PayoutDistributionService',
    'LoginBonusService',
]
