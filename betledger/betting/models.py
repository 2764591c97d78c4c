"""
Domain records for the bankroll engine.

These are immutable snapshots handed to the pure calculators in
``betledger.betting`` and ``betledger.strategies``. The persistence layer
converts its ORM rows into these records once per request; nothing in the
calculators reaches back into storage.

All money fields are ``Decimal``. Numeric inputs (int, str, Decimal) are
coerced on construction and range-checked, raising ``ValidationError``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from betledger.core.datetime_utils import ensure_utc
from betledger.core.errors import ValidationError
from betledger.core.money import ONE, ZERO, to_decimal, to_optional_decimal


# ============================================================================
# Enum Definitions
# ============================================================================

class UnitMode(str, Enum):
    """How a bankroll's betting unit is defined."""
    FIXED = "fixed"        # unit_value is a currency amount
    PERCENT = "percent"    # unit_value is a fraction of current balance


class TransactionType(str, Enum):
    """Ledger entry types."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ADJUSTMENT = "adjustment"
    PROFIT = "profit"
    LOSS = "loss"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"

    @property
    def is_credit(self) -> bool:
        return self in _CREDIT_TYPES

    @property
    def is_debit(self) -> bool:
        return self in _DEBIT_TYPES

    @property
    def is_settlement(self) -> bool:
        return self in (TransactionType.PROFIT, TransactionType.LOSS)


_CREDIT_TYPES = frozenset({
    TransactionType.DEPOSIT, TransactionType.PROFIT, TransactionType.TRANSFER_IN
})
_DEBIT_TYPES = frozenset({
    TransactionType.WITHDRAWAL, TransactionType.LOSS, TransactionType.TRANSFER_OUT
})


class BetStatus(str, Enum):
    """Bet lifecycle. pending -> won | lost, never back."""
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


class GoalStatus(str, Enum):
    """Goal lifecycle. met and missed are terminal."""
    ACTIVE = "active"
    MET = "met"
    MISSED = "missed"


def _set(obj, name, value) -> None:
    object.__setattr__(obj, name, value)


def _check_fraction(value: Optional[Decimal], field: str) -> None:
    """Fractions live in (0, 1]."""
    if value is not None and not ZERO < value <= ONE:
        raise ValidationError(f"{field} must be in (0, 1], got {value}")


# ============================================================================
# Bankroll
# ============================================================================

@dataclass(frozen=True)
class Bankroll:
    """
    A named pool of money under risk-management rules.

    Attributes:
        starting_balance: Opening balance, immutable after creation
        unit_mode: FIXED (unit_value is currency) or PERCENT (fraction of balance)
        unit_value: Size of one unit in the chosen mode
        max_bet_pct: Largest stake as a fraction of current balance
        daily_loss_limit_pct: Max fraction of balance lost per day (None = no limit)
        weekly_loss_limit_pct: Max fraction of balance lost per week (None = no limit)
        kelly_fraction: Conservative multiplier applied to full Kelly
    """
    id: str
    owner_id: str
    starting_balance: Decimal
    unit_mode: UnitMode
    unit_value: Decimal
    name: str = ""
    currency: str = "USD"
    max_bet_pct: Decimal = Decimal("0.05")
    daily_loss_limit_pct: Optional[Decimal] = None
    weekly_loss_limit_pct: Optional[Decimal] = None
    kelly_fraction: Decimal = Decimal("0.25")
    is_active: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        """Coerce and validate inputs."""
        _set(self, "unit_mode", coerce_enum(UnitMode, self.unit_mode, "unit_mode"))
        _set(self, "starting_balance", to_decimal(self.starting_balance, "starting_balance"))
        _set(self, "unit_value", to_decimal(self.unit_value, "unit_value"))
        _set(self, "max_bet_pct", to_decimal(self.max_bet_pct, "max_bet_pct"))
        _set(self, "kelly_fraction", to_decimal(self.kelly_fraction, "kelly_fraction"))
        _set(self, "daily_loss_limit_pct",
             to_optional_decimal(self.daily_loss_limit_pct, "daily_loss_limit_pct"))
        _set(self, "weekly_loss_limit_pct",
             to_optional_decimal(self.weekly_loss_limit_pct, "weekly_loss_limit_pct"))
        if self.created_at is not None:
            _set(self, "created_at", ensure_utc(self.created_at))

        if self.starting_balance < 0:
            raise ValidationError(
                f"starting_balance must be >= 0, got {self.starting_balance}"
            )
        if self.unit_value <= 0:
            raise ValidationError(f"unit_value must be > 0, got {self.unit_value}")
        _check_fraction(self.max_bet_pct, "max_bet_pct")
        _check_fraction(self.kelly_fraction, "kelly_fraction")
        _check_fraction(self.daily_loss_limit_pct, "daily_loss_limit_pct")
        _check_fraction(self.weekly_loss_limit_pct, "weekly_loss_limit_pct")


# ============================================================================
# Transaction
# ============================================================================

@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger entry.

    ``amount`` is a positive magnitude for every type except ADJUSTMENT,
    whose amount is stored already signed (positive credit, negative debit).
    Entries are ordered by ``created_at`` then ``sequence``, the
    per-bankroll insertion counter.
    """
    id: str
    bankroll_id: str
    type: TransactionType
    amount: Decimal
    created_at: datetime
    sequence: int = 0
    reason: Optional[str] = None
    ref_bet_id: Optional[str] = None

    def __post_init__(self):
        _set(self, "type", coerce_enum(TransactionType, self.type, "type"))
        _set(self, "amount", to_decimal(self.amount, "amount"))
        _set(self, "created_at", ensure_utc(self.created_at))
        if self.type is not TransactionType.ADJUSTMENT and self.amount < 0:
            raise ValidationError(
                f"{self.type.value} amount must be a positive magnitude, got {self.amount}"
            )

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this entry on the balance."""
        if self.type.is_debit:
            return -self.amount
        return self.amount

    @property
    def sort_key(self):
        return (self.created_at, self.sequence)


# ============================================================================
# Bet
# ============================================================================

@dataclass(frozen=True)
class Bet:
    """
    A wager tied to one bankroll.

    ``stake_units`` is computed once when the bet is placed, from the unit
    size at that instant, and never recomputed. It is None when units were
    undefined at placement (e.g. percent mode with a zero balance).
    """
    id: str
    bankroll_id: str
    stake: Decimal
    potential_payout: Decimal
    stake_units: Optional[Decimal] = None
    status: BetStatus = BetStatus.PENDING
    actual_payout: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    sport: str = ""
    event: str = ""
    bet_type: str = ""
    odds: str = ""

    def __post_init__(self):
        _set(self, "status", coerce_enum(BetStatus, self.status, "status"))
        _set(self, "stake", to_decimal(self.stake, "stake"))
        _set(self, "potential_payout", to_decimal(self.potential_payout, "potential_payout"))
        _set(self, "stake_units", to_optional_decimal(self.stake_units, "stake_units"))
        _set(self, "actual_payout", to_optional_decimal(self.actual_payout, "actual_payout"))
        if self.created_at is not None:
            _set(self, "created_at", ensure_utc(self.created_at))
        if self.settled_at is not None:
            _set(self, "settled_at", ensure_utc(self.settled_at))

        if self.stake <= 0:
            raise ValidationError(f"stake must be > 0, got {self.stake}")
        if self.potential_payout <= 0:
            raise ValidationError(
                f"potential_payout must be > 0, got {self.potential_payout}"
            )
        if self.status is BetStatus.WON and self.actual_payout is None:
            raise ValidationError("won bets require actual_payout")
        if self.status is not BetStatus.WON and self.actual_payout is not None:
            raise ValidationError(f"{self.status.value} bets carry no actual_payout")

    @property
    def is_settled(self) -> bool:
        return self.status is not BetStatus.PENDING

    @property
    def profit(self) -> Decimal:
        """Realized profit: payout - stake if won, -stake if lost, 0 if pending."""
        if self.status is BetStatus.WON:
            return self.actual_payout - self.stake
        if self.status is BetStatus.LOST:
            return -self.stake
        return ZERO

    @property
    def settlement_time(self) -> Optional[datetime]:
        return self.settled_at or self.created_at


# ============================================================================
# Goal
# ============================================================================

@dataclass(frozen=True)
class BankrollGoal:
    """
    Target progress marker for a bankroll.

    At least one of ``target_amount`` (absolute balance) or
    ``target_profit`` (gain over the starting balance) is set. When both
    are set, ``target_amount`` is the one evaluated.
    """
    id: str
    bankroll_id: str
    target_amount: Optional[Decimal] = None
    target_profit: Optional[Decimal] = None
    target_date: Optional[datetime] = None
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: Optional[datetime] = None

    def __post_init__(self):
        _set(self, "status", coerce_enum(GoalStatus, self.status, "status"))
        _set(self, "target_amount", to_optional_decimal(self.target_amount, "target_amount"))
        _set(self, "target_profit", to_optional_decimal(self.target_profit, "target_profit"))
        if self.target_date is not None:
            _set(self, "target_date", ensure_utc(self.target_date))
        if self.created_at is not None:
            _set(self, "created_at", ensure_utc(self.created_at))
        if self.target_amount is None and self.target_profit is None:
            raise ValidationError("goal requires target_amount or target_profit")
        for name in ("target_amount", "target_profit"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValidationError(f"{name} must be > 0, got {value}")

    @property
    def is_terminal(self) -> bool:
        return self.status is not GoalStatus.ACTIVE


def coerce_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of [{allowed}], got {value!r}") from e
