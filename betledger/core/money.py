"""
Decimal arithmetic helpers.

Money, percentages and unit counts are ``Decimal`` throughout the engine.
Floats are accepted at the edges only through their ``str`` form so that
``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from betledger.core.errors import ValidationError

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """Coerce ``value`` to a finite Decimal or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} must be numeric, got {value!r}") from e
    else:
        raise ValidationError(f"{field} must be numeric, got {type(value).__name__}")
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")
    return result


def to_optional_decimal(value: Optional[Number], field: str = "value") -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(value, field)


def safe_divide(numerator: Decimal, denominator: Decimal, default: Decimal = ZERO) -> Decimal:
    """Divide, returning ``default`` when the denominator is zero."""
    if denominator == 0:
        return default
    return numerator / denominator


def percent(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole * 100``, or 0 when ``whole`` is zero."""
    return safe_divide(part * HUNDRED, whole)


def quantize(value: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
