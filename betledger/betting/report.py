"""
Bankroll report.

Composes every calculator into a single read model for one bankroll:
balance, ledger totals, history, drawdown, analytics, unit P&L, risk
metrics, loss-limit checks, goal evaluations and recent activity.

The balance, history and drawdown always cover the full ledger, since a
balance is only meaningful from the first entry. Ledger totals and bet
analytics honour the optional date range.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from betledger.betting.analytics import (
    AdvancedAnalytics,
    BetAnalytics,
    CategoryKey,
    UnitPnL,
    calculate_advanced_analytics,
    calculate_analytics,
    unit_pnl,
)
from betledger.betting.balance import (
    BalancePoint,
    LedgerTotals,
    balance_history,
    current_balance,
    ledger_totals,
)
from betledger.betting.drawdown import DrawdownStats, analyze_drawdown
from betledger.betting.goals import GoalEvaluation, evaluate_goal
from betledger.betting.models import Bankroll, BankrollGoal, Bet, Transaction
from betledger.core.datetime_utils import ensure_utc
from betledger.strategies.risk import (
    LossLimitCheck,
    RiskMetrics,
    calculate_risk_metrics,
    check_daily_loss_limit,
    check_weekly_loss_limit,
)

RECENT_ACTIVITY_LIMIT = 10


@dataclass(frozen=True)
class ActivityItem:
    timestamp: datetime
    type: str
    amount: Decimal
    description: str
    ref_bet_id: Optional[str] = None


@dataclass(frozen=True)
class BankrollReport:
    bankroll_id: str
    current_balance: Decimal
    totals: LedgerTotals
    balance_history: Tuple[BalancePoint, ...]
    drawdown: DrawdownStats
    analytics: BetAnalytics
    advanced: AdvancedAnalytics
    unit_pnl: UnitPnL
    risk_metrics: RiskMetrics
    daily_loss: LossLimitCheck
    weekly_loss: LossLimitCheck
    goals: Tuple[GoalEvaluation, ...]
    recent_activity: Tuple[ActivityItem, ...]


def _in_range(tx: Transaction, date_from: Optional[datetime], date_to: Optional[datetime]) -> bool:
    if date_from is not None and tx.created_at < ensure_utc(date_from):
        return False
    if date_to is not None and tx.created_at > ensure_utc(date_to):
        return False
    return True


def recent_activity(transactions: Sequence[Transaction], limit: int = RECENT_ACTIVITY_LIMIT) -> List[ActivityItem]:
    """Newest ledger entries first."""
    newest = sorted(transactions, key=lambda tx: tx.sort_key, reverse=True)[:limit]
    return [
        ActivityItem(
            timestamp=tx.created_at,
            type=tx.type.value,
            amount=tx.amount,
            description=tx.reason or f"{tx.type.value.replace('_', ' ')} transaction",
            ref_bet_id=tx.ref_bet_id
        )
        for tx in newest
    ]


def build_bankroll_report(
    bankroll: Bankroll,
    transactions: Sequence[Transaction],
    bets: Sequence[Bet],
    goals: Sequence[BankrollGoal],
    now: datetime,
    tz: tzinfo = timezone.utc,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    category: Optional[CategoryKey] = None
) -> BankrollReport:
    """
    Full analytics snapshot for one bankroll.

    Args:
        bankroll: The bankroll record
        transactions: Its complete ledger
        bets: Its bets (pending included; they only matter to risk metrics)
        goals: Its goals
        now: Evaluation instant for loss windows and goal deadlines
        tz: Owner's reference time zone
        date_from: Optional inclusive lower bound for totals and analytics
        date_to: Optional inclusive upper bound for totals and analytics
        category: Grouping key for the per-category breakdown
    """
    balance = current_balance(bankroll, transactions)
    history = balance_history(bankroll, transactions)
    drawdown = analyze_drawdown(history, starting_balance=bankroll.starting_balance)

    analytics = calculate_analytics(
        bets, bankroll.starting_balance, date_from, date_to, category
    )
    ranged = [tx for tx in transactions if _in_range(tx, date_from, date_to)]

    # Goals track lifetime performance, not the selected range
    lifetime_profit = ledger_totals(transactions).realized_profit
    evaluations = tuple(
        evaluate_goal(goal, balance, lifetime_profit, now) for goal in goals
    )

    return BankrollReport(
        bankroll_id=bankroll.id,
        current_balance=balance,
        totals=ledger_totals(ranged),
        balance_history=tuple(history),
        drawdown=drawdown,
        analytics=analytics,
        advanced=calculate_advanced_analytics(bets, date_from, date_to, tz),
        unit_pnl=unit_pnl(bets, date_from, date_to),
        risk_metrics=calculate_risk_metrics(bets, history, balance),
        daily_loss=check_daily_loss_limit(bankroll, transactions, now, tz),
        weekly_loss=check_weekly_loss_limit(bankroll, transactions, now, tz),
        goals=evaluations,
        recent_activity=tuple(recent_activity(transactions))
    )
