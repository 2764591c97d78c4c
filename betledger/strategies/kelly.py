"""
Kelly Criterion Bet Sizing.

For a binary bet with win probability p and decimal odds b, the net odds
are ``b - 1`` and the classic Kelly fraction is:

.. math::

    f^* = \\frac{p(b-1) - (1-p)}{b-1}

Where:
    - f* = optimal fraction of bankroll to wager
    - p = probability of winning
    - b = decimal odds (net odds b - 1 per unit wagered)

A negative f* means the bet has no edge; it is clamped to 0 so a negative
stake is never recommended. Full Kelly is aggressive, so every bankroll
also carries a conservative ``kelly_fraction`` (quarter Kelly by default)
and both sizes are reported.

All arithmetic is Decimal. Invalid probabilities or odds are rejected
with ``ValidationError`` rather than clamped.

References
----------
- Kelly, J.L. (1956). "A New Interpretation of Information Rate"
- Thorp, E.O. (2006). "The Kelly Criterion in Blackjack Sports Betting..."
"""

import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from betledger.betting.models import Bankroll
from betledger.core.errors import ValidationError
from betledger.core.money import HUNDRED, ONE, ZERO, Number, to_decimal
from betledger.strategies.units import defined_or_none, stake_to_units

_AMERICAN_ODDS = re.compile(r"^([+-])(\d+(?:\.\d+)?)$")


@dataclass(frozen=True)
class KellyResult:
    """
    Result of a Kelly calculation.

    Attributes:
        fraction: Recommended wager as fraction of bankroll (>= 0)
        raw_kelly: Unclamped Kelly fraction (negative when there is no edge)
        edge: Expected value per unit staked, p * b - 1
        is_positive_ev: Whether the bet has positive expected value
    """
    fraction: Decimal
    raw_kelly: Decimal
    edge: Decimal
    is_positive_ev: bool

    def stake_amount(self, bankroll: Decimal) -> Decimal:
        """Calculate actual stake amount for given bankroll."""
        return self.fraction * max(ZERO, bankroll)


@dataclass(frozen=True)
class KellySizing:
    """
    Kelly sizing for one bet against one bankroll.

    Percentages are on a 0-100 scale. Unit fields are None when the
    bankroll's units are undefined at the current balance.
    """
    win_probability: Decimal
    decimal_odds: Decimal
    edge_percent: Decimal
    kelly_percent: Decimal
    suggested_bet_size: Decimal
    suggested_units: Optional[Decimal]
    kelly_fraction: Decimal
    fractional_kelly_bet_size: Decimal
    fractional_kelly_units: Optional[Decimal]


def validate_inputs(prob: Number, decimal_odds: Number) -> tuple:
    """Return (p, b) as Decimals or raise ValidationError."""
    p = to_decimal(prob, "win_probability")
    b = to_decimal(decimal_odds, "decimal_odds")
    if not ZERO < p < ONE:
        raise ValidationError(f"Probability must be in (0, 1), got {p}")
    if b <= ONE:
        raise ValidationError(f"Decimal odds must be > 1.0, got {b}")
    return p, b


def kelly_criterion(prob: Number, decimal_odds: Number) -> KellyResult:
    """
    Calculate the classic Kelly fraction for a binary outcome.

    Args:
        prob: Probability of winning (0 < p < 1)
        decimal_odds: Decimal odds offered (> 1.0; 2.0 = even money)

    Returns:
        KellyResult with the clamped optimal fraction

    Raises:
        ValidationError: If inputs are out of valid ranges

    Example:
        >>> kelly_criterion(Decimal("0.55"), Decimal("2.0")).fraction
        Decimal('0.1')
        >>> kelly_criterion(Decimal("0.40"), Decimal("2.0")).fraction
        Decimal('0')
    """
    p, b = validate_inputs(prob, decimal_odds)
    q = ONE - p
    net_odds = b - ONE

    raw_kelly = (p * net_odds - q) / net_odds
    fraction = raw_kelly if raw_kelly > 0 else ZERO

    return KellyResult(
        fraction=fraction,
        raw_kelly=raw_kelly,
        edge=p * b - ONE,
        is_positive_ev=raw_kelly > 0
    )


def fractional_kelly(prob: Number, decimal_odds: Number, fraction: Number = Decimal("0.25")) -> KellyResult:
    """
    Scale full Kelly by a conservative multiplier.

    Quarter Kelly keeps most of the growth rate at a fraction of the
    variance, and protects against overestimated probabilities.
    """
    multiplier = to_decimal(fraction, "fraction")
    if not ZERO < multiplier <= ONE:
        raise ValidationError(f"Fraction must be in (0, 1], got {multiplier}")

    full = kelly_criterion(prob, decimal_odds)
    return replace(full, fraction=full.fraction * multiplier)


def kelly(
    win_probability: Number,
    decimal_odds: Number,
    bankroll: Bankroll,
    current_balance: Number
) -> KellySizing:
    """
    Kelly sizing for a bankroll, in currency and in units.

    Example:
        >>> # p = 0.55 at 2.00, quarter Kelly, $1,000 balance
        >>> sizing = kelly("0.55", "2.00", bankroll, Decimal("1000"))
        >>> sizing.edge_percent, sizing.kelly_percent
        (Decimal('10.00'), Decimal('10.00'))
        >>> sizing.suggested_bet_size, sizing.fractional_kelly_bet_size
        (Decimal('100.0000'), Decimal('25.0000'))
    """
    p, b = validate_inputs(win_probability, decimal_odds)
    balance = to_decimal(current_balance, "current_balance")

    full = kelly_criterion(p, b)
    suggested = full.stake_amount(balance)
    fractional = fractional_kelly(p, b, bankroll.kelly_fraction).stake_amount(balance)

    return KellySizing(
        win_probability=p,
        decimal_odds=b,
        edge_percent=full.edge * HUNDRED,
        kelly_percent=full.fraction * HUNDRED,
        suggested_bet_size=suggested,
        suggested_units=defined_or_none(stake_to_units(suggested, bankroll, balance)),
        kelly_fraction=bankroll.kelly_fraction,
        fractional_kelly_bet_size=fractional,
        fractional_kelly_units=defined_or_none(stake_to_units(fractional, bankroll, balance))
    )


def parse_odds(odds: str) -> Decimal:
    """
    Parse American ("+155", "-110") or decimal ("2.10") odds to decimal odds.

    Example:
        >>> parse_odds("+150")
        Decimal('2.5')
        >>> parse_odds("-200")
        Decimal('1.5')
    """
    text = odds.strip() if isinstance(odds, str) else str(odds)
    match = _AMERICAN_ODDS.match(text)
    if match:
        sign, magnitude = match.group(1), Decimal(match.group(2))
        if magnitude == 0:
            raise ValidationError(f"Invalid American odds: {odds!r}")
        if sign == "+":
            return magnitude / HUNDRED + ONE
        return HUNDRED / magnitude + ONE

    value = to_decimal(text, "odds")
    if value <= ONE:
        raise ValidationError(f"Decimal odds must be > 1.0, got {value}")
    return value

