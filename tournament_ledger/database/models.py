from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Boolean, Float,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from decimal import Decimal
from enum import Enum

Base = declarative_base()

class SubscriptionStatus(Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

class TournamentStatus(Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"

class WagerStatus(Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"
    PUSH = "push"  # Exact tie refunded under the refund push policy

    @property
    def is_terminal(self) -> bool:
        return self is not WagerStatus.PENDING

class BackedSide(Enum):
    HOST = "host"
    GUEST = "guest"

class PayoutStatus(Enum):
    PENDING = "pending"
    PAID = "paid"

class LedgerReason(Enum):
    WAGER_PLACED = "wager_placed"
    WAGER_CANCELLED = "wager_cancelled"
    WAGER_WON = "wager_won"
    WAGER_PUSH = "wager_push"
    LOGIN_BONUS = "login_bonus"
    PERIOD_RESET = "period_reset"


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(Decimal("0.01"))


class User(Base):
    """Subscriber directory record with lifetime tournament stats."""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(100))

    # Subscription
    subscription_status = Column(SQLEnum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False, index=True)
    current_tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=True)

    # Login streak tracking (dates are calendar days in the competition timezone)
    login_streak = Column(Integer, default=0, nullable=False)
    last_login_date = Column(Date, nullable=True)

    # Tournament stats
    tournaments_entered = Column(Integer, default=0, nullable=False)
    best_finish = Column(Integer, nullable=True)  # Best paid rank, None until first payout
    total_winnings_cents = Column(Integer, default=0, nullable=False)
    lifetime_wagers = Column(Integer, default=0, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    wallets = relationship("Wallet", back_populates="user")
    current_tournament = relationship("Tournament", foreign_keys=[current_tournament_id])

    @property
    def is_subscribed(self) -> bool:
        return self.subscription_status == SubscriptionStatus.ACTIVE

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', status={self.subscription_status.value})>"

class Tournament(Base):
    __tablename__ = 'tournaments'

    id = Column(Integer, primary_key=True)

    # Period (period_start is the local calendar day the period opened)
    period_start = Column(Date, nullable=False, unique=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False, index=True)

    status = Column(SQLEnum(TournamentStatus), default=TournamentStatus.UPCOMING, nullable=False, index=True)
    participant_count = Column(Integer, default=0, nullable=False)
    total_prize_pool_cents = Column(Integer, default=0, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    finalized_at = Column(DateTime, nullable=True)

    # Relationships
    payout_tiers = relationship(
        "PayoutTier", back_populates="tournament",
        cascade="all, delete-orphan", order_by="PayoutTier.rank"
    )
    wallets = relationship("Wallet", back_populates="tournament")

    __table_args__ = (
        CheckConstraint('participant_count >= 0', name='non_negative_participant_count'),
        CheckConstraint('total_prize_pool_cents >= 0', name='non_negative_prize_pool'),
    )

    @property
    def is_active(self) -> bool:
        return self.status == TournamentStatus.ACTIVE

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    def __repr__(self):
        return f"<Tournament(id={self.id}, period_start={self.period_start}, status={self.status.value})>"

class PayoutTier(Base):
    __tablename__ = 'payout_tiers'

    id = Column(Integer, primary_key=True)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    percent_of_pool = Column(Float, nullable=False)  # 0.25 == 25%

    tournament = relationship("Tournament", back_populates="payout_tiers")

    __table_args__ = (
        UniqueConstraint('tournament_id', 'rank', name='unique_tier_rank_per_tournament'),
        CheckConstraint('rank > 0', name='positive_tier_rank'),
        CheckConstraint('percent_of_pool >= 0 AND percent_of_pool <= 1', name='tier_percent_range'),
    )

    def __repr__(self):
        return f"<PayoutTier(tournament_id={self.tournament_id}, rank={self.rank}, percent={self.percent_of_pool:.4f})>"

class Wallet(Base):
    """
    Per-user, per-tournament coin balance.

    coins_remaining is guarded by a CHECK constraint and by conditional
    updates; coins_bet tracks the sum of all non-cancelled wagers placed.
    """
    __tablename__ = 'wallets'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False, index=True)
    username = Column(String(100), nullable=False)

    coins_remaining = Column(Integer, nullable=False, default=0)
    coins_bet = Column(Integer, nullable=False, default=0)
    coins_won = Column(Integer, nullable=False, default=0)
    wagers_placed = Column(Integer, nullable=False, default=0)
    wagers_won = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=False, default=0)  # 0 until finalization

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="wallets")
    tournament = relationship("Tournament", back_populates="wallets")
    wagers = relationship("Wager", back_populates="wallet")

    __table_args__ = (
        UniqueConstraint('user_id', 'tournament_id', name='unique_wallet_per_user_tournament'),
        CheckConstraint('coins_remaining >= 0', name='non_negative_coins_remaining'),
    )

    @property
    def total_score(self) -> int:
        return self.coins_remaining + self.coins_won

    def __repr__(self):
        return (f"<Wallet(id={self.id}, user_id={self.user_id}, tournament_id={self.tournament_id}, "
                f"remaining={self.coins_remaining}, bet={self.coins_bet}, won={self.coins_won})>")

class Game(Base):
    __tablename__ = 'games'

    id = Column(Integer, primary_key=True)
    host_team = Column(String(100), nullable=False)
    guest_team = Column(String(100), nullable=False)
    start_time = Column(DateTime, nullable=False)

    # Manual lock set by an operator, independent of the time-based cutoff
    is_locked = Column(Boolean, default=False, nullable=False)

    # Final score, filled by the outcome feed
    host_score = Column(Integer, nullable=True)
    guest_score = Column(Integer, nullable=True)
    is_final = Column(Boolean, default=False, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Game(id={self.id}, {self.host_team} vs {self.guest_team}, final={self.is_final})>"

class Wager(Base):
    __tablename__ = 'wagers'

    id = Column(Integer, primary_key=True)
    wallet_id = Column(Integer, ForeignKey('wallets.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    game_id = Column(Integer, ForeignKey('games.id'), nullable=False)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    spread = Column(Float, nullable=False, default=0.0)  # Host's line
    backed_side = Column(SQLEnum(BackedSide), nullable=False)
    status = Column(SQLEnum(WagerStatus), default=WagerStatus.PENDING, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    wallet = relationship("Wallet", back_populates="wagers")
    game = relationship("Game")

    __table_args__ = (
        CheckConstraint('amount > 0', name='positive_wager_amount'),
        Index('ix_wagers_game_status', 'game_id', 'status'),
    )

    @property
    def can_be_cancelled(self) -> bool:
        return not self.status.is_terminal

    def __repr__(self):
        return f"<Wager(id={self.id}, game_id={self.game_id}, amount={self.amount}, status={self.status.value})>"

class Payout(Base):
    __tablename__ = 'payouts'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False, index=True)
    wallet_id = Column(Integer, ForeignKey('wallets.id'), nullable=False)

    amount_cents = Column(Integer, nullable=False)
    rank = Column(Integer, nullable=False)
    status = Column(SQLEnum(PayoutStatus), default=PayoutStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'tournament_id', name='unique_payout_per_user_tournament'),
        CheckConstraint('amount_cents >= 0', name='non_negative_payout'),
    )

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)

    def __repr__(self):
        return f"<Payout(user_id={self.user_id}, tournament_id={self.tournament_id}, rank={self.rank}, amount={self.amount})>"

# ============================================================================
# Audit trail
# ============================================================================

class CoinLedger(Base):
    """
    Append-only coin transaction ledger for wallets.

    Each entry records the signed change, the reason, and the wallet balance
    after the change, read inside the same transaction as the update.
    """
    __tablename__ = 'coin_ledger'

    id = Column(Integer, primary_key=True)
    wallet_id = Column(Integer, ForeignKey('wallets.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False)

    change_amount = Column(Integer, nullable=False)  # Can be positive or negative
    reason = Column(SQLEnum(LedgerReason), nullable=False)
    balance_after = Column(Integer, nullable=False)

    related_wager_id = Column(Integer, ForeignKey('wagers.id'), nullable=True)

    timestamp = Column(DateTime, default=func.now())

    def __repr__(self):
        return (f"<CoinLedger(wallet_id={self.wallet_id}, amount={self.change_amount}, "
                f"balance_after={self.balance_after}, reason='{self.reason.value}')>")

class LoginBonus(Base):
    __tablename__ = 'login_bonuses'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    tournament_id = Column(Integer, ForeignKey('tournaments.id'), nullable=False)
    bonus_date = Column(Date, nullable=False)
    streak = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'bonus_date', name='unique_bonus_per_user_day'),
    )

    def __repr__(self):
        return f"<LoginBonus(user_id={self.user_id}, date={self.bonus_date}, streak={self.streak}, amount={self.amount})>"
