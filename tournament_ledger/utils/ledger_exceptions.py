"""
Custom exceptions for the wallet ledger with user-friendly error messages.
"""

class LedgerException(Exception):
    """Base exception for ledger-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class InvalidAmountError(LedgerException):
    """Raised when a wager amount is not a positive integer."""
    def __init__(self, amount):
        super().__init__(
            f"Invalid wager amount {amount!r}",
            "❌ Wager amount must be a positive whole number of coins."
        )
        self.amount = amount

class InsufficientFundsError(LedgerException):
    """Raised when a wallet cannot cover a wager."""
    def __init__(self, wallet_id: int, available: int, requested: int):
        super().__init__(
            f"Wallet {wallet_id} has {available} coins, {requested} requested",
            f"❌ Not enough tournament coins ({available} available)."
        )
        self.wallet_id = wallet_id
        self.available = available
        self.requested = requested

class GameNotFoundError(LedgerException):
    """Raised when a wager targets an unknown game."""
    def __init__(self, game_id: int):
        super().__init__(f"Game {game_id} not found", "❌ Game not found.")
        self.game_id = game_id

class GameLockedError(LedgerException):
    """Raised when a game is past its betting cutoff."""
    def __init__(self, game_id: int):
        super().__init__(
            f"Game {game_id} is locked for betting",
            "❌ Betting is closed for this game."
        )
        self.game_id = game_id

class WagerNotFoundError(LedgerException):
    """Raised when a wager does not exist."""
    def __init__(self, wager_id: int):
        super().__init__(f"Wager {wager_id} not found", "❌ Wager not found.")
        self.wager_id = wager_id

class CannotCancelError(LedgerException):
    """Raised when a wager is no longer pending."""
    def __init__(self, wager_id: int, status: str):
        super().__init__(
            f"Wager {wager_id} cannot be cancelled in status '{status}'",
            "❌ Only pending wagers can be cancelled."
        )
        self.wager_id = wager_id
        self.status = status

class TournamentNotFoundError(LedgerException):
    """Raised when a tournament is not found."""
    def __init__(self, tournament_id=None):
        detail = f"Tournament {tournament_id} not found" if tournament_id is not None else "No active tournament"
        super().__init__(detail, "❌ Tournament not found.")
        self.tournament_id = tournament_id

class TournamentInactiveError(LedgerException):
    """Raised when a tournament is not accepting activity."""
    def __init__(self, tournament_id: int, status: str):
        super().__init__(
            f"Tournament {tournament_id} is {status}, not active",
            "❌ This tournament is not active."
        )
        self.tournament_id = tournament_id
        self.status = status

class InvalidTransitionError(LedgerException):
    """Raised when a tournament status change would skip or reverse a step."""
    def __init__(self, tournament_id: int, current: str, target: str):
        super().__init__(
            f"Tournament {tournament_id} cannot move from {current} to {target}",
            "❌ Invalid tournament status change."
        )

class WalletNotFoundError(LedgerException):
    """Raised when a wallet is not found."""
    def __init__(self, wallet_id=None, user_id=None, tournament_id=None):
        if wallet_id is not None:
            detail = f"Wallet {wallet_id} not found"
        else:
            detail = f"No wallet for user {user_id} in tournament {tournament_id}"
        super().__init__(detail, "❌ You are not registered in this tournament.")
        self.wallet_id = wallet_id
        self.user_id = user_id
        self.tournament_id = tournament_id

class UserNotFoundError(LedgerException):
    """Raised when a user is not in the subscriber directory."""
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found", "❌ User not found.")
        self.user_id = user_id

class InvalidStandingsDataError(LedgerException):
    """Raised when a wallet record cannot be ranked."""
    def __init__(self, wallet_id, reason: str):
        super().__init__(
            f"Wallet {wallet_id} has invalid standings data: {reason}",
            "❌ Invalid leaderboard data."
        )
        self.wallet_id = wallet_id
        self.reason = reason

class ConcurrentUpdateConflictError(LedgerException):
    """Raised when a guarded update lost a race with another writer."""
    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} was changed by another operation",
            "❌ This record changed while you were updating it. Please try again."
        )
        self.entity = entity
        self.entity_id = entity_id

class OperationNotSupportedError(LedgerException):
    """Raised when an operation cannot apply, e.g. a bonus with no current wallet."""
    def __init__(self, operation: str, reason: str, streak: int = None):
        super().__init__(
            f"{operation} not supported: {reason}",
            f"❌ {reason}"
        )
        self.operation = operation
        self.reason = reason
        self.streak = streak

class TransactionError(LedgerException):
    """Raised when transaction operations fail."""
    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Transaction failed for {operation} after {attempts} attempts",
            "❌ Operation failed. Please try again later."
        )
        self.operation = operation
        self.attempts = attempts
