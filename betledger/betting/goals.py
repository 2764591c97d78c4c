"""
Goal Tracker.

Progress toward a target balance (``target_amount``) or a target gain over
the starting balance (``target_profit``), and the status that follows:

    active -> met     progress reaches 100%
    active -> missed  target date passed with progress below 100%

``met`` and ``missed`` are terminal.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from betledger.betting.models import BankrollGoal, GoalStatus
from betledger.core.datetime_utils import ensure_utc
from betledger.core.money import HUNDRED, Number, percent, quantize, to_decimal


@dataclass(frozen=True)
class GoalEvaluation:
    goal_id: str
    progress_percent: Decimal
    status: GoalStatus
    changed: bool


def _raw_progress(goal: BankrollGoal, current_balance: Number, net_profit: Number) -> Decimal:
    if goal.target_amount is not None:
        achieved = to_decimal(current_balance, "current_balance")
        target = goal.target_amount
    else:
        achieved = to_decimal(net_profit, "net_profit")
        target = goal.target_profit
    return percent(achieved, target)


def goal_progress(goal: BankrollGoal, current_balance: Number, net_profit: Number) -> Decimal:
    """
    Percent progress toward the goal's target, rounded for display.

    Uses ``target_amount`` against the current balance when set, otherwise
    ``target_profit`` against net profit. Not capped: overshooting reports
    more than 100 and a loss on a profit target reports a negative value.
    """
    return quantize(_raw_progress(goal, current_balance, net_profit))


def evaluate_goal(
    goal: BankrollGoal,
    current_balance: Number,
    net_profit: Number,
    now: datetime
) -> GoalEvaluation:
    """Progress plus the status the goal should now hold."""
    progress = _raw_progress(goal, current_balance, net_profit)

    if goal.is_terminal:
        status = goal.status
    elif progress >= HUNDRED:
        status = GoalStatus.MET
    elif goal.target_date is not None and ensure_utc(now) > goal.target_date:
        status = GoalStatus.MISSED
    else:
        status = GoalStatus.ACTIVE

    return GoalEvaluation(
        goal_id=goal.id,
        progress_percent=quantize(progress),
        status=status,
        changed=status is not goal.status
    )
