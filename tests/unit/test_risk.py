"""
Unit tests for risk limits and risk metrics.

Tests:
- Daily and weekly loss windows, including local time zones
- Loss-limit checks
- Pre-bet stake validation
- Risk of ruin, Sharpe ratio and summary metrics
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from betledger.betting.balance import BalancePoint
from betledger.core.errors import ValidationError
from betledger.strategies.risk import (
    calculate_risk_metrics,
    check_daily_loss_limit,
    check_loss_limit,
    check_weekly_loss_limit,
    day_start,
    risk_of_ruin,
    sharpe_ratio,
    validate_bet_size,
    week_start,
    window_loss,
)

UTC = timezone.utc
NOW = datetime(2024, 3, 6, 15, 0, tzinfo=UTC)  # Wednesday


def at(day, hour, minute=0):
    return datetime(2024, 3, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def limited(bankroll):
    """10% daily and 20% weekly loss limits."""
    return replace(
        bankroll,
        daily_loss_limit_pct=Decimal("0.10"),
        weekly_loss_limit_pct=Decimal("0.20")
    )


@pytest.mark.unit
class TestWindows:
    def test_day_start_utc(self):
        assert day_start(NOW, UTC) == at(6, 0)

    def test_week_start_is_monday(self):
        assert week_start(NOW, UTC) == at(4, 0)

    def test_week_start_on_monday(self):
        assert week_start(at(4, 8), UTC) == at(4, 0)

    def test_local_day_start(self):
        """22:00 EST on the 5th is 03:00 UTC on the 6th."""
        ny = ZoneInfo("America/New_York")
        start = day_start(at(6, 3), ny)

        assert start.astimezone(UTC) == at(5, 5)


@pytest.mark.unit
class TestWindowLoss:
    def test_counts_losses_withdrawals_and_negative_adjustments(self, make_transaction):
        txs = [
            make_transaction("loss", "60", at=at(6, 9)),
            make_transaction("withdrawal", "25", at=at(6, 10)),
            make_transaction("adjustment", "-5", at=at(6, 11)),
            make_transaction("adjustment", "8", at=at(6, 11)),
            make_transaction("deposit", "100", at=at(6, 12)),
            make_transaction("profit", "40", at=at(6, 12)),
        ]

        assert window_loss(txs, at(6, 0), NOW) == Decimal("90")

    def test_start_inclusive_end_exclusive(self, make_transaction):
        txs = [
            make_transaction("loss", "10", at=at(6, 0)),
            make_transaction("loss", "20", at=NOW),
            make_transaction("loss", "40", at=at(5, 23, 59)),
        ]

        assert window_loss(txs, at(6, 0), NOW) == Decimal("10")

    def test_start_after_now_rejected(self):
        with pytest.raises(ValidationError):
            window_loss([], NOW + timedelta(seconds=1), NOW)


@pytest.mark.unit
class TestLossLimits:
    """Test trailing loss-limit checks."""

    def test_daily_limit_exceeded(self, limited, make_transaction):
        txs = [
            make_transaction("loss", "60", at=at(6, 9)),
            make_transaction("loss", "60", at=at(6, 10)),
        ]

        check = check_daily_loss_limit(limited, txs, NOW, UTC)

        assert check.current_loss == Decimal("120")
        # 10% of the current 880 balance
        assert check.limit == Decimal("88")
        assert check.limit_exceeded is True
        assert check.remaining_amount == 0
        assert check.window_start == at(6, 0)

    def test_no_losses(self, limited):
        check = check_daily_loss_limit(limited, [], NOW, UTC)

        assert check.current_loss == 0
        assert check.limit_exceeded is False
        assert check.remaining_amount == check.limit == Decimal("100")

    def test_loss_equal_to_limit_not_exceeded(self, bankroll, make_transaction):
        txs = [make_transaction("deposit", "100", at=at(1, 9)),
               make_transaction("loss", "100", at=at(6, 9))]

        check = check_loss_limit(bankroll, txs, at(6, 0), "0.10", NOW)

        assert check.limit == Decimal("100")
        assert check.limit_exceeded is False
        assert check.remaining_amount == 0

    def test_weekly_window(self, limited, make_transaction):
        txs = [
            make_transaction("loss", "50", at=at(3, 23)),   # Sunday, previous week
            make_transaction("loss", "70", at=at(4, 1)),
            make_transaction("loss", "30", at=at(6, 9)),
        ]

        weekly = check_weekly_loss_limit(limited, txs, NOW, UTC)
        daily = check_daily_loss_limit(limited, txs, NOW, UTC)

        assert weekly.current_loss == Decimal("100")
        assert weekly.window_start == at(4, 0)
        assert daily.current_loss == Decimal("30")

    def test_no_limit_never_exceeded(self, bankroll, make_transaction):
        txs = [make_transaction("loss", "900", at=at(6, 9))]

        check = check_daily_loss_limit(bankroll, txs, NOW, UTC)

        assert check.current_loss == Decimal("900")
        assert check.limit == 0
        assert check.limit_exceeded is False

    def test_negative_balance_limit_floored(self, bankroll, make_transaction):
        txs = [make_transaction("withdrawal", "1100", at=at(6, 9))]

        check = check_loss_limit(bankroll, txs, at(6, 0), "0.10", NOW)

        assert check.limit == 0
        assert check.limit_exceeded is False
        assert check.remaining_amount == 0

    def test_zero_balance_limit_never_exceeded(self, bankroll, make_transaction):
        txs = [make_transaction("loss", "1000", at=at(6, 9))]

        check = check_daily_loss_limit(replace(bankroll, daily_loss_limit_pct="0.10"), txs, NOW, UTC)

        assert check.current_loss == Decimal("1000")
        assert check.limit == 0
        assert check.limit_exceeded is False

    def test_negative_pct_rejected(self, bankroll):
        with pytest.raises(ValidationError):
            check_loss_limit(bankroll, [], at(6, 0), "-0.1", NOW)

    def test_local_day_window(self, limited, make_transaction):
        ny = ZoneInfo("America/New_York")
        now = at(6, 3)  # 22:00 EST on the 5th
        txs = [make_transaction("loss", "30", at=at(5, 6))]

        assert check_daily_loss_limit(limited, txs, now, ny).current_loss == Decimal("30")
        assert check_daily_loss_limit(limited, txs, now, UTC).current_loss == 0


@pytest.mark.unit
class TestValidateBetSize:
    """Test pre-bet stake validation."""

    def test_valid_stake(self, bankroll):
        result = validate_bet_size(bankroll, [], "40", NOW, UTC)

        assert result.valid
        assert result.reasons == ()

    def test_exceeds_max_bet(self, bankroll):
        result = validate_bet_size(bankroll, [], "60", NOW, UTC)

        assert not result.valid
        assert result.reasons == ("Stake exceeds maximum bet size of 50.00 (5% of bankroll)",)

    def test_exceeds_balance(self, bankroll):
        result = validate_bet_size(bankroll, [], "1200", NOW, UTC)

        assert "Stake amount exceeds current bankroll balance" in result.reasons
        assert len(result.reasons) == 2

    def test_would_exceed_daily_limit(self, limited, make_transaction):
        txs = [make_transaction("loss", "60", at=at(6, 9))]

        # Balance 940, daily limit 94, 60 already lost
        assert validate_bet_size(limited, txs, "30", NOW, UTC).valid
        result = validate_bet_size(limited, txs, "40", NOW, UTC)

        assert result.reasons == ("This bet would exceed daily loss limit",)

    def test_daily_limit_already_exceeded(self, limited, make_transaction):
        txs = [
            make_transaction("loss", "60", at=at(6, 9)),
            make_transaction("loss", "60", at=at(6, 10)),
        ]

        result = validate_bet_size(limited, txs, "10", NOW, UTC)

        assert "Daily loss limit already exceeded" in result.reasons

    def test_unset_limits_skipped(self, bankroll, make_transaction):
        txs = [make_transaction("loss", "300", at=at(6, 9))]

        assert validate_bet_size(bankroll, txs, "20", NOW, UTC).valid

    def test_non_positive_stake_rejected(self, bankroll):
        with pytest.raises(ValidationError):
            validate_bet_size(bankroll, [], "0", NOW, UTC)


@pytest.mark.unit
class TestRiskOfRuin:
    def test_positive_edge(self):
        # (0.4 / 0.6) ** 10
        assert risk_of_ruin(0.6, 1000, 100) == pytest.approx(1.7342, abs=1e-3)

    def test_no_edge_is_certain_ruin(self):
        assert risk_of_ruin(0.5, 1000, 100) == 100.0
        assert risk_of_ruin(0.3, 1000, 100) == 100.0

    def test_broke_is_certain_ruin(self):
        assert risk_of_ruin(0.7, 0, 100) == 100.0

    def test_no_stakes(self):
        assert risk_of_ruin(0.7, 1000, 0) == 0.0


@pytest.mark.unit
class TestSharpeRatio:
    @staticmethod
    def history(*balances):
        return [
            BalancePoint(timestamp=None, balance=Decimal(str(b)), delta=Decimal("0"))
            for b in balances
        ]

    def test_too_short(self):
        assert sharpe_ratio(self.history(1000, 1100)) == 0.0

    def test_flat_history(self):
        assert sharpe_ratio(self.history(1000, 1000, 1000)) == 0.0

    def test_mean_over_std(self):
        # Returns +10%, -10%, +10%
        result = sharpe_ratio(self.history(100, 110, 99, "108.9"))

        assert result == pytest.approx(0.2887, abs=1e-3)

    def test_non_positive_balance_step_is_zero_return(self):
        # Returns 0, +10%, +10%
        result = sharpe_ratio(self.history(0, 100, 110, 121))

        assert math.isfinite(result)
        assert result == pytest.approx(1.1547, abs=1e-3)


@pytest.mark.unit
class TestRiskMetrics:
    """Test the summary risk metrics."""

    def test_metrics(self, make_bet):
        bets = [
            make_bet("50", status="won", actual_payout="125", minutes=1),
            make_bet("50", status="lost", minutes=2),
            make_bet("20", status="won", actual_payout="40", minutes=3),
            make_bet("30", status="won", actual_payout="60", minutes=4),
            make_bet("200", minutes=5),
        ]

        metrics = calculate_risk_metrics(bets, [], Decimal("1000"))

        # Largest stake includes the pending bet
        assert metrics.max_bet_risk_percent == Decimal("20.00")
        # Win runs of 1 and 2
        assert metrics.win_streak_std_dev == Decimal("0.71")
        assert metrics.risk_of_ruin == Decimal("0.00")
        assert metrics.sharpe_ratio == 0

    def test_nothing_settled(self, make_bet):
        metrics = calculate_risk_metrics([make_bet("50")], [], Decimal("1000"))

        assert metrics.risk_of_ruin == 0
        assert metrics.max_bet_risk_percent == 0
        assert metrics.win_streak_std_dev == 0

    def test_losing_record_is_certain_ruin(self, make_bet):
        bets = [make_bet("50", status="lost", minutes=i) for i in range(3)]

        metrics = calculate_risk_metrics(bets, [], Decimal("850"))

        assert metrics.risk_of_ruin == Decimal("100.00")

    def test_zero_balance_no_exposure_percent(self, make_bet):
        bets = [make_bet("50", status="lost")]

        metrics = calculate_risk_metrics(bets, [], Decimal("0"))

        assert metrics.max_bet_risk_percent == 0

    def test_str(self, make_bet):
        metrics = calculate_risk_metrics([make_bet("50", status="lost")], [], Decimal("950"))

        assert "Risk of Ruin: 100.00%" in str(metrics)
