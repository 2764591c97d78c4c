"""
Bet sizing and risk management.

    units   stake <-> units for fixed and percent-of-balance units
    kelly   full and fractional Kelly sizing
    risk    trailing loss limits, stake validation, risk metrics
"""

from .units import (
    DivisionUndefined,
    MaxBetSize,
    is_undefined,
    max_bet_size,
    stake_to_units,
    unit_size,
    units_to_stake,
)
from .kelly import KellyResult, KellySizing, fractional_kelly, kelly, kelly_criterion, parse_odds
from .risk import (
    BetSizeValidation,
    LossLimitCheck,
    RiskMetrics,
    calculate_risk_metrics,
    check_daily_loss_limit,
    check_loss_limit,
    check_weekly_loss_limit,
    validate_bet_size,
)

__all__ = [
    "DivisionUndefined",
    "MaxBetSize",
    "is_undefined",
    "max_bet_size",
    "stake_to_units",
    "unit_size",
    "units_to_stake",
    "KellyResult",
    "KellySizing",
    "fractional_kelly",
    "kelly",
    "kelly_criterion",
    "parse_odds",
    "BetSizeValidation",
    "LossLimitCheck",
    "RiskMetrics",
    "calculate_risk_metrics",
    "check_daily_loss_limit",
    "check_loss_limit",
    "check_weekly_loss_limit",
    "validate_bet_size",
]
