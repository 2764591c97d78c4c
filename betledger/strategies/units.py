"""
Unit Sizing Calculator.

Converts between a stake amount and a unit count for a bankroll.

    FIXED    one unit = unit_value (currency)
    PERCENT  one unit = unit_value * current_balance

When the unit size is zero (or, in percent mode, the balance is not
positive) the conversion has no meaningful value. The functions then
return a ``DivisionUndefined`` marker instead of raising, so callers can
render "N/A".

A bet's ``stake_units`` is computed once at placement with the balance
at that instant and is never recomputed afterwards.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from betledger.betting.models import Bankroll, UnitMode
from betledger.core.errors import ValidationError
from betledger.core.money import Number, ZERO, to_decimal


@dataclass(frozen=True)
class DivisionUndefined:
    """Marker for a unit conversion with no defined value."""
    reason: str


UnitResult = Union[Decimal, DivisionUndefined]


@dataclass(frozen=True)
class MaxBetSize:
    """Largest permitted stake under ``max_bet_pct``."""
    max_amount: Decimal
    max_units: Optional[Decimal]


def is_undefined(value) -> bool:
    return isinstance(value, DivisionUndefined)


def defined_or_none(value: UnitResult) -> Optional[Decimal]:
    """Collapse the undefined marker to None for storage and serialisation."""
    if isinstance(value, DivisionUndefined):
        return None
    return value


def unit_size(bankroll: Bankroll, current_balance: Number) -> UnitResult:
    """Currency value of one unit at ``current_balance``."""
    if bankroll.unit_mode is UnitMode.FIXED:
        size = bankroll.unit_value
    else:
        balance = to_decimal(current_balance, "current_balance")
        if balance <= 0:
            return DivisionUndefined(
                f"percent units are undefined at a balance of {balance}"
            )
        size = bankroll.unit_value * balance

    if size == 0:
        return DivisionUndefined("unit value is zero")
    return size


def stake_to_units(stake: Number, bankroll: Bankroll, current_balance: Number) -> UnitResult:
    """
    Express ``stake`` in units.

    Example:
        >>> # percent mode, 1% units, $2,000 balance
        >>> stake_to_units(Decimal("40"), bankroll, Decimal("2000"))
        Decimal('2')
    """
    stake = to_decimal(stake, "stake")
    if stake < 0:
        raise ValidationError(f"stake must be >= 0, got {stake}")

    size = unit_size(bankroll, current_balance)
    if isinstance(size, DivisionUndefined):
        return size
    return stake / size


def units_to_stake(units: Number, bankroll: Bankroll, current_balance: Number) -> UnitResult:
    """Inverse of ``stake_to_units``."""
    units = to_decimal(units, "units")
    if units < 0:
        raise ValidationError(f"units must be >= 0, got {units}")

    size = unit_size(bankroll, current_balance)
    if isinstance(size, DivisionUndefined):
        return size
    return units * size


def max_bet_size(bankroll: Bankroll, current_balance: Number) -> MaxBetSize:
    """Maximum stake (currency and units) permitted by ``max_bet_pct``."""
    balance = to_decimal(current_balance, "current_balance")
    max_amount = max(ZERO, balance * bankroll.max_bet_pct)
    return MaxBetSize(
        max_amount=max_amount,
        max_units=defined_or_none(stake_to_units(max_amount, bankroll, balance))
    )
