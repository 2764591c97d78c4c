"""Ledger folding, drawdown, analytics and goal tracking for bankrolls."""

from .models import (
    Bankroll,
    BankrollGoal,
    Bet,
    BetStatus,
    GoalStatus,
    Transaction,
    TransactionType,
    UnitMode,
)
from .balance import BalancePoint, LedgerTotals, balance_history, current_balance, ledger_totals
from .drawdown import DrawdownStats, analyze_drawdown
from .analytics import BetAnalytics, calculate_analytics
from .goals import GoalEvaluation, evaluate_goal, goal_progress

__all__ = [
    "Bankroll",
    "BankrollGoal",
    "Bet",
    "BetStatus",
    "GoalStatus",
    "Transaction",
    "TransactionType",
    "UnitMode",
    "BalancePoint",
    "LedgerTotals",
    "balance_history",
    "current_balance",
    "ledger_totals",
    "DrawdownStats",
    "analyze_drawdown",
    "BetAnalytics",
    "calculate_analytics",
    "GoalEvaluation",
    "evaluate_goal",
    "goal_progress",
]
