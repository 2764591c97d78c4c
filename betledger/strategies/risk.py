"""
Risk Limit Checking and Bankroll Risk Metrics.

This module provides tools for:
    1. Trailing loss-limit checks (daily and weekly windows)
    2. Pre-bet stake validation against balance, max bet size and limits
    3. Summary risk metrics (risk of ruin, Sharpe, single-bet exposure)

Loss Limits
===========

Realized loss in a window counts the magnitude of every ``loss``,
``withdrawal`` and negative ``adjustment`` entry with
``window_start <= created_at < now``. Pending bets are not exposure until
they settle.

.. math::

    limit = pct \\times balance_{current}

    exceeded \\iff loss_{window} > limit

Windows are anchored in the owner's reference time zone: the daily
window opens at local midnight, the weekly window at the most recent
local Monday midnight.

Risk of Ruin
============

Uses the classic gambler's-ruin approximation for even-sized bets:

.. math::

    P(ruin) = \\left(\\frac{q}{p}\\right)^{B / s}

Where B is the current balance and s the average stake. With ``p <= 0.5``
ruin is certain in the long run and the estimate is 100%.

References
----------
- Feller, W. (1968). "An Introduction to Probability Theory", ch. XIV
- Sharpe, W.F. (1966). "Mutual Fund Performance"
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, tzinfo
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import numpy as np

from betledger.betting.balance import BalancePoint, current_balance
from betledger.betting.models import Bankroll, Bet, BetStatus, Transaction, TransactionType
from betledger.core.datetime_utils import ensure_utc
from betledger.core.errors import ValidationError
from betledger.core.money import HUNDRED, ZERO, Number, quantize, to_decimal, to_optional_decimal


@dataclass(frozen=True)
class LossLimitCheck:
    """
    Result of a trailing loss-limit check.

    Attributes:
        current_loss: Realized loss in the window (positive magnitude)
        limit: Loss allowed in the window (0 when no limit is set)
        limit_exceeded: current_loss > limit, never True without a limit
        remaining_amount: max(0, limit - current_loss)
        window_start: Inclusive start of the window
    """
    current_loss: Decimal
    limit: Decimal
    limit_exceeded: bool
    remaining_amount: Decimal
    window_start: Optional[datetime] = None


@dataclass(frozen=True)
class BetSizeValidation:
    valid: bool
    reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskMetrics:
    """
    Summary risk statistics for a bankroll.

    Attributes:
        risk_of_ruin: Gambler's-ruin estimate, percent (0-100)
        sharpe_ratio: Mean / std of per-entry balance returns (unannualized)
        max_bet_risk_percent: Largest stake as a percent of current balance
        win_streak_std_dev: Sample std of win-streak lengths
    """
    risk_of_ruin: Decimal
    sharpe_ratio: Decimal
    max_bet_risk_percent: Decimal
    win_streak_std_dev: Decimal

    def __str__(self) -> str:
        return (
            f"Risk Metrics:\n"
            f"  Risk of Ruin: {self.risk_of_ruin}%\n"
            f"  Sharpe Ratio: {self.sharpe_ratio}\n"
            f"  Max Bet Risk: {self.max_bet_risk_percent}%\n"
            f"  Win Streak Std: {self.win_streak_std_dev}"
        )


# ============================================================================
# Windows
# ============================================================================

def day_start(now: datetime, tz: tzinfo) -> datetime:
    """Local midnight of ``now``'s day in ``tz``."""
    local = ensure_utc(now).astimezone(tz)
    return datetime.combine(local.date(), time(0), tzinfo=tz)


def week_start(now: datetime, tz: tzinfo) -> datetime:
    """Local midnight of the most recent Monday (today if it is Monday)."""
    local = ensure_utc(now).astimezone(tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time(0), tzinfo=tz)


def _loss_magnitude(tx: Transaction) -> Decimal:
    if tx.type in (TransactionType.LOSS, TransactionType.WITHDRAWAL):
        return tx.amount
    if tx.type is TransactionType.ADJUSTMENT and tx.amount < 0:
        return -tx.amount
    return ZERO


def window_loss(
    transactions: Sequence[Transaction],
    window_start: datetime,
    now: datetime
) -> Decimal:
    """Sum of loss magnitudes with ``window_start <= created_at < now``."""
    start, end = ensure_utc(window_start), ensure_utc(now)
    if start > end:
        raise ValidationError(f"window_start {start} is after now {end}")

    return sum(
        (_loss_magnitude(tx) for tx in transactions if start <= tx.created_at < end),
        ZERO
    )


# ============================================================================
# Loss Limits
# ============================================================================

def check_loss_limit(
    bankroll: Bankroll,
    transactions: Sequence[Transaction],
    window_start: datetime,
    limit_pct: Optional[Number],
    now: datetime
) -> LossLimitCheck:
    """
    Check realized losses in ``[window_start, now)`` against
    ``limit_pct * current_balance``.

    An unset or zero ``limit_pct`` means no limit: the check is never
    exceeded and ``limit`` is reported as 0.

    Example:
        >>> # 10% daily limit on $1,000, two $60 losses today
        >>> check = check_loss_limit(bankroll, txs, midnight, "0.10", now)
        >>> check.current_loss, check.limit_exceeded, check.remaining_amount
        (Decimal('120'), True, Decimal('0'))
    """
    pct = to_optional_decimal(limit_pct, "limit_pct")
    if pct is not None and pct < 0:
        raise ValidationError(f"limit_pct must be >= 0, got {pct}")

    loss = window_loss(transactions, window_start, now)

    if not pct:
        return LossLimitCheck(
            current_loss=loss,
            limit=ZERO,
            limit_exceeded=False,
            remaining_amount=ZERO,
            window_start=window_start
        )

    limit = max(ZERO, pct * current_balance(bankroll, transactions))
    return LossLimitCheck(
        current_loss=loss,
        limit=limit,
        limit_exceeded=limit > 0 and loss > limit,
        remaining_amount=max(ZERO, limit - loss),
        window_start=window_start
    )


def check_daily_loss_limit(
    bankroll: Bankroll,
    transactions: Sequence[Transaction],
    now: datetime,
    tz: tzinfo
) -> LossLimitCheck:
    return check_loss_limit(
        bankroll, transactions, day_start(now, tz), bankroll.daily_loss_limit_pct, now
    )


def check_weekly_loss_limit(
    bankroll: Bankroll,
    transactions: Sequence[Transaction],
    now: datetime,
    tz: tzinfo
) -> LossLimitCheck:
    return check_loss_limit(
        bankroll, transactions, week_start(now, tz), bankroll.weekly_loss_limit_pct, now
    )


def validate_bet_size(
    bankroll: Bankroll,
    transactions: Sequence[Transaction],
    stake: Number,
    now: datetime,
    tz: tzinfo
) -> BetSizeValidation:
    """
    Pre-bet checks for a proposed stake.

    Flags a stake larger than the balance or than ``max_bet_pct`` of it,
    and a configured daily/weekly loss limit that is already exceeded or
    that this stake, if lost, would push over.
    """
    stake = to_decimal(stake, "stake")
    if stake <= 0:
        raise ValidationError(f"stake must be > 0, got {stake}")

    balance = current_balance(bankroll, transactions)
    reasons: List[str] = []

    if stake > balance:
        reasons.append("Stake amount exceeds current bankroll balance")

    max_amount = max(ZERO, balance * bankroll.max_bet_pct)
    if stake > max_amount:
        reasons.append(
            f"Stake exceeds maximum bet size of {quantize(max_amount)} "
            f"({(bankroll.max_bet_pct * HUNDRED).normalize():f}% of bankroll)"
        )

    for label, pct, check in (
        ("Daily", bankroll.daily_loss_limit_pct, check_daily_loss_limit),
        ("Weekly", bankroll.weekly_loss_limit_pct, check_weekly_loss_limit),
    ):
        if not pct:
            continue
        result = check(bankroll, transactions, now, tz)
        if result.limit_exceeded:
            reasons.append(f"{label} loss limit already exceeded")
        elif result.limit > 0 and result.current_loss + stake > result.limit:
            reasons.append(f"This bet would exceed {label.lower()} loss limit")

    return BetSizeValidation(valid=not reasons, reasons=tuple(reasons))


# ============================================================================
# Risk Metrics
# ============================================================================

def _rounded(value: float, places: int) -> Decimal:
    return quantize(Decimal(str(float(value))), places)


def _win_streaks(bets: Sequence[Bet]) -> List[int]:
    """Lengths of consecutive-win runs in settlement order."""
    streaks, run = [], 0
    for bet in bets:
        if bet.status is BetStatus.WON:
            run += 1
        elif run:
            streaks.append(run)
            run = 0
    if run:
        streaks.append(run)
    return streaks


def risk_of_ruin(win_rate: float, balance: float, avg_stake: float) -> float:
    """Gambler's-ruin probability in percent."""
    if avg_stake <= 0:
        return 0.0
    if balance <= 0 or win_rate <= 0.5:
        return 100.0
    ratio = (1 - win_rate) / win_rate
    return float(np.clip(np.power(ratio, balance / avg_stake) * 100, 0.0, 100.0))


def sharpe_ratio(history: Sequence[BalancePoint]) -> float:
    """
    Mean over sample std of per-entry returns.

    A step from a non-positive balance contributes a return of 0.
    """
    balances = np.array([float(p.balance) for p in history])
    if len(balances) < 3:
        return 0.0

    prev, curr = balances[:-1], balances[1:]
    returns = np.divide(
        curr - prev, prev, out=np.zeros_like(prev), where=prev > 0
    )
    std = np.std(returns, ddof=1)
    if std == 0:
        return 0.0
    return float(np.mean(returns) / std)


def calculate_risk_metrics(
    bets: Sequence[Bet],
    history: Sequence[BalancePoint],
    balance: Decimal
) -> RiskMetrics:
    """
    Summary risk statistics over a bankroll's bets and balance history.

    Returns all-zero metrics when nothing has settled.
    """
    settled = sorted(
        (b for b in bets if b.is_settled), key=lambda b: b.settlement_time
    )
    if not settled:
        return RiskMetrics(
            risk_of_ruin=ZERO,
            sharpe_ratio=_rounded(sharpe_ratio(history), 4),
            max_bet_risk_percent=ZERO,
            win_streak_std_dev=ZERO
        )

    stakes = np.array([float(b.stake) for b in settled])
    wins = np.array([b.status is BetStatus.WON for b in settled])
    win_rate = float(np.mean(wins))

    ruin = risk_of_ruin(win_rate, float(balance), float(np.mean(stakes)))

    max_risk = ZERO
    if balance > 0:
        max_risk = max(b.stake for b in bets) / balance * HUNDRED

    streaks = np.array(_win_streaks(settled), dtype=float)
    streak_std = float(np.std(streaks, ddof=1)) if len(streaks) > 1 else 0.0

    return RiskMetrics(
        risk_of_ruin=_rounded(ruin, 2),
        sharpe_ratio=_rounded(sharpe_ratio(history), 4),
        max_bet_risk_percent=quantize(max_risk),
        win_streak_std_dev=_rounded(streak_std, 2)
    )
