"""
SQLAlchemy ORM Models for the betledger bankroll store.

Rows convert to the immutable domain records in ``betledger.betting.models``
via ``to_domain()``; the calculators never see ORM objects.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    String, Integer, Boolean, Text, Numeric, DateTime,
    ForeignKey, CheckConstraint, UniqueConstraint, Index, Enum
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from betledger.betting import models as domain
from betledger.betting.models import BetStatus, GoalStatus, TransactionType, UnitMode
from betledger.core.datetime_utils import utc_now


def _new_id() -> str:
    return str(uuid4())


def _enum_column(enum_cls, name: str) -> Enum:
    """Store enum ``.value`` strings as VARCHAR so SQLite and Postgres agree."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True
    )


MONEY = Numeric(12, 2)
UNITS = Numeric(12, 4)
FRACTION = Numeric(5, 4)


# ============================================================================
# Base Model
# ============================================================================

class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# ============================================================================
# Bankroll Model
# ============================================================================

class Bankroll(Base):
    """
    A user's bankroll and its risk-management settings.

    ``starting_balance``, ``currency`` and ``unit_mode`` are fixed at
    creation; the repository refuses to change them.
    """
    __tablename__ = "bankrolls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), default="")
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    starting_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    unit_mode: Mapped[UnitMode] = mapped_column(
        _enum_column(UnitMode, "unit_mode"), nullable=False
    )
    unit_value: Mapped[Decimal] = mapped_column(UNITS, nullable=False)
    max_bet_pct: Mapped[Decimal] = mapped_column(FRACTION, default=Decimal("0.05"))
    daily_loss_limit_pct: Mapped[Optional[Decimal]] = mapped_column(FRACTION)
    weekly_loss_limit_pct: Mapped[Optional[Decimal]] = mapped_column(FRACTION)
    kelly_fraction: Mapped[Decimal] = mapped_column(FRACTION, default=Decimal("0.25"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    # Relationships
    transactions: Mapped[List["BankrollTransaction"]] = relationship(
        back_populates="bankroll", cascade="all, delete-orphan"
    )
    bets: Mapped[List["Bet"]] = relationship(
        back_populates="bankroll", cascade="all, delete-orphan"
    )
    goals: Mapped[List["BankrollGoal"]] = relationship(
        back_populates="bankroll", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("starting_balance >= 0", name="non_negative_starting_balance"),
        CheckConstraint("unit_value > 0", name="positive_unit_value"),
        Index("idx_bankrolls_owner", "owner_id"),
    )

    def to_domain(self) -> domain.Bankroll:
        return domain.Bankroll(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name or "",
            currency=self.currency or "USD",
            starting_balance=self.starting_balance,
            unit_mode=self.unit_mode,
            unit_value=self.unit_value,
            max_bet_pct=self.max_bet_pct,
            daily_loss_limit_pct=self.daily_loss_limit_pct,
            weekly_loss_limit_pct=self.weekly_loss_limit_pct,
            kelly_fraction=self.kelly_fraction,
            is_active=bool(self.is_active),
            created_at=self.created_at
        )

    def __repr__(self) -> str:
        return f"<Bankroll(id={self.id}, owner={self.owner_id}, active={self.is_active})>"


# ============================================================================
# Ledger Model
# ============================================================================

class BankrollTransaction(Base):
    """
    Append-only ledger entry.

    ``sequence`` is a per-bankroll insertion counter breaking ties on
    ``created_at``. A settlement entry carries the settled bet's id in
    ``ref_bet_id``; the unique constraint makes it the idempotency key.
    """
    __tablename__ = "bankroll_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    bankroll_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bankrolls.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType, "transaction_type"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    ref_bet_id: Mapped[Optional[str]] = mapped_column(String(36), unique=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    bankroll: Mapped["Bankroll"] = relationship(back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("bankroll_id", "sequence", name="unique_ledger_sequence"),
        Index("idx_transactions_bankroll_time", "bankroll_id", "created_at"),
    )

    def to_domain(self) -> domain.Transaction:
        return domain.Transaction(
            id=self.id,
            bankroll_id=self.bankroll_id,
            type=self.type,
            amount=self.amount,
            created_at=self.created_at,
            sequence=self.sequence,
            reason=self.reason,
            ref_bet_id=self.ref_bet_id
        )

    def __repr__(self) -> str:
        return f"<BankrollTransaction(type={self.type.value}, amount={self.amount})>"


# ============================================================================
# Bet Model
# ============================================================================

class Bet(Base):
    """
    A wager against one bankroll.

    ``stake_units`` is written once at placement and never updated.
    """
    __tablename__ = "bets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    bankroll_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bankrolls.id", ondelete="CASCADE"), nullable=False
    )
    sport: Mapped[str] = mapped_column(String(50), default="")
    event: Mapped[str] = mapped_column(String(200), default="")
    bet_type: Mapped[str] = mapped_column(String(50), default="")
    odds: Mapped[str] = mapped_column(String(20), default="")
    stake: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    stake_units: Mapped[Optional[Decimal]] = mapped_column(UNITS)
    potential_payout: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    actual_payout: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    status: Mapped[BetStatus] = mapped_column(
        _enum_column(BetStatus, "bet_status"), default=BetStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    bankroll: Mapped["Bankroll"] = relationship(back_populates="bets")

    __table_args__ = (
        CheckConstraint("stake > 0", name="positive_stake"),
        CheckConstraint("potential_payout > 0", name="positive_potential_payout"),
        Index("idx_bets_bankroll_status", "bankroll_id", "status"),
    )

    def to_domain(self) -> domain.Bet:
        return domain.Bet(
            id=self.id,
            bankroll_id=self.bankroll_id,
            stake=self.stake,
            potential_payout=self.potential_payout,
            stake_units=self.stake_units,
            status=self.status,
            actual_payout=self.actual_payout,
            created_at=self.created_at,
            settled_at=self.settled_at,
            sport=self.sport or "",
            event=self.event or "",
            bet_type=self.bet_type or "",
            odds=self.odds or ""
        )

    def __repr__(self) -> str:
        return f"<Bet(id={self.id}, stake={self.stake}, status={self.status.value})>"


# ============================================================================
# Goal Model
# ============================================================================

class BankrollGoal(Base):
    """Target balance or profit for a bankroll."""
    __tablename__ = "bankroll_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    bankroll_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bankrolls.id", ondelete="CASCADE"), nullable=False
    )
    target_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    target_profit: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    target_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[GoalStatus] = mapped_column(
        _enum_column(GoalStatus, "goal_status"), default=GoalStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    bankroll: Mapped["Bankroll"] = relationship(back_populates="goals")

    __table_args__ = (
        CheckConstraint(
            "target_amount IS NOT NULL OR target_profit IS NOT NULL",
            name="goal_has_target"
        ),
    )

    def to_domain(self) -> domain.BankrollGoal:
        return domain.BankrollGoal(
            id=self.id,
            bankroll_id=self.bankroll_id,
            target_amount=self.target_amount,
            target_profit=self.target_profit,
            target_date=self.target_date,
            status=self.status,
            created_at=self.created_at
        )

    def __repr__(self) -> str:
        return f"<BankrollGoal(id={self.id}, status={self.status.value})>"
