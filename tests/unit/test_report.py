"""
Unit tests for the composed bankroll report.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from betledger.betting.goals import GoalEvaluation
from betledger.betting.models import BankrollGoal, GoalStatus
from betledger.betting.report import build_bankroll_report, recent_activity

T0 = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(make_transaction, make_bet):
    bets = [
        make_bet("50", status="won", actual_payout="125", at=T0),
        make_bet("50", status="lost", at=T0 + timedelta(minutes=60)),
    ]
    txs = [
        make_transaction("deposit", "200", at=T0 - timedelta(days=1), reason="Top up"),
        make_transaction("profit", "75", at=T0 + timedelta(hours=3), ref_bet_id=bets[0].id),
        make_transaction("loss", "50", at=T0 + timedelta(hours=4), ref_bet_id=bets[1].id),
    ]
    return txs, bets


@pytest.mark.unit
class TestBuildBankrollReport:
    """Test the composed report."""

    def test_balance_and_drawdown(self, bankroll, ledger):
        txs, bets = ledger

        report = build_bankroll_report(bankroll, txs, bets, [], now=T0 + timedelta(days=1))

        assert report.current_balance == Decimal("1225")
        assert [p.balance for p in report.balance_history] == [
            Decimal("1200"), Decimal("1275"), Decimal("1225")
        ]
        assert report.drawdown.peak_balance == Decimal("1275")
        assert report.drawdown.max_drawdown == Decimal("50")
        assert report.totals.total_deposits == Decimal("200")
        assert report.totals.realized_profit == Decimal("25")

    def test_analytics_sections(self, bankroll, ledger):
        txs, bets = ledger

        report = build_bankroll_report(bankroll, txs, bets, [], now=T0 + timedelta(days=1))

        assert report.analytics.total_bets == 2
        assert report.analytics.net_profit == Decimal("25")
        assert report.advanced.streaks.current_type == "loss"
        assert report.risk_metrics.max_bet_risk_percent == Decimal("4.08")

    def test_loss_windows(self, bankroll, ledger):
        txs, bets = ledger

        report = build_bankroll_report(bankroll, txs, bets, [], now=T0 + timedelta(days=1))

        assert report.daily_loss.current_loss == 0
        assert report.weekly_loss.current_loss == Decimal("50")
        assert report.weekly_loss.limit_exceeded is False

    def test_date_range_limits_totals_not_balance(self, bankroll, ledger):
        txs, bets = ledger

        report = build_bankroll_report(
            bankroll, txs, bets, [], now=T0 + timedelta(days=1), date_from=T0
        )

        assert report.totals.total_deposits == 0
        assert report.totals.realized_profit == Decimal("25")
        assert report.current_balance == Decimal("1225")

    def test_goals_use_lifetime_profit(self, bankroll, ledger):
        txs, bets = ledger
        goals = [
            BankrollGoal(id="g-1", bankroll_id="br-1", target_profit="25"),
            BankrollGoal(id="g-2", bankroll_id="br-1", target_amount="2000"),
        ]

        report = build_bankroll_report(
            bankroll, txs, bets, goals, now=T0 + timedelta(days=1), date_from=T0 + timedelta(hours=4)
        )

        assert report.goals == (
            GoalEvaluation(goal_id="g-1", progress_percent=Decimal("100.00"),
                           status=GoalStatus.MET, changed=True),
            GoalEvaluation(goal_id="g-2", progress_percent=Decimal("61.25"),
                           status=GoalStatus.ACTIVE, changed=False),
        )


@pytest.mark.unit
class TestRecentActivity:
    def test_newest_first(self, ledger):
        txs, _ = ledger

        items = recent_activity(txs)

        assert [i.type for i in items] == ["loss", "profit", "deposit"]
        assert items[0].description == "loss transaction"
        assert items[0].ref_bet_id == "bet-002"
        assert items[-1].description == "Top up"

    def test_limit(self, make_transaction):
        txs = [make_transaction("deposit", "1", minutes=i) for i in range(15)]

        items = recent_activity(txs)

        assert len(items) == 10
        assert items[0].timestamp == txs[-1].created_at

    def test_transfer_description(self, make_transaction):
        items = recent_activity([make_transaction("transfer_in", "10")])

        assert items[0].description == "transfer in transaction"
