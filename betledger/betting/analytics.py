"""
Analytics Aggregator.

Provides performance calculations over settled bets including:
- Win rate, average win/loss, average stake and ROI
- Profit by a caller-supplied category (sport, bet type, ...)
- Profit over time, by day of week and by month
- Win/loss streaks and stake-size distribution
- Profit and loss expressed in betting units

Only settled bets count. When a date range is given, bets are selected
by ``created_at`` with both bounds inclusive. Every ratio is guarded:
an empty denominator yields 0, never an error.

Example:
    >>> stats = calculate_analytics(bets, starting_balance=Decimal("1000"))
    >>> stats.win_rate, stats.net_profit, stats.roi
    (Decimal('100.00'), Decimal('75'), Decimal('150.00'))
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from operator import attrgetter
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from betledger.betting.models import Bet, BetStatus
from betledger.core.datetime_utils import ensure_utc
from betledger.core.money import ZERO, percent, quantize, safe_divide, to_decimal

CategoryKey = Union[str, Callable[[Bet], str]]

DAYS_OF_WEEK = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"
)

# Upper bound (inclusive) and label for each stake bucket; None = open ended
BET_SIZE_BUCKETS = (
    (Decimal("25"), "$1-25"),
    (Decimal("50"), "$26-50"),
    (Decimal("100"), "$51-100"),
    (Decimal("250"), "$101-250"),
    (None, "$251+"),
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class CategoryStats:
    """Performance of one category of bets."""
    key: str
    total_bets: int
    winning_bets: int
    profit: Decimal
    total_staked: Decimal
    win_rate: Decimal
    roi: Decimal


@dataclass(frozen=True)
class BetAnalytics:
    """
    Headline performance over a set of settled bets.

    Attributes:
        total_bets: Settled bets in range
        win_rate: winning_bets / total_bets * 100
        net_profit: Sum of realized profit
        net_profit_percent: net_profit / starting balance * 100
        avg_win_amount: Mean profit of won bets
        avg_loss_amount: Mean stake of lost bets (positive magnitude)
        avg_bet_size: Mean stake
        avg_bet_size_units: Mean frozen ``stake_units`` (bets with units only)
        roi: net_profit / total_staked * 100
        profit_by_type: Per-category breakdown, most profitable first
    """
    total_bets: int
    winning_bets: int
    losing_bets: int
    win_rate: Decimal
    net_profit: Decimal
    net_profit_percent: Decimal
    avg_win_amount: Decimal
    avg_loss_amount: Decimal
    avg_bet_size: Decimal
    avg_bet_size_units: Decimal
    total_staked: Decimal
    roi: Decimal
    profit_by_type: Tuple[CategoryStats, ...] = ()


@dataclass(frozen=True)
class ProfitPoint:
    timestamp: Optional[datetime]
    bet_id: str
    profit: Decimal
    cumulative_profit: Decimal


@dataclass(frozen=True)
class DayOfWeekStats:
    day: str
    profit: Decimal
    bet_count: int


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    profit: Decimal
    bet_count: int
    win_rate: Decimal
    roi: Decimal


@dataclass(frozen=True)
class StreakStats:
    """
    Win/loss runs in settlement order.

    ``current_type`` is "win", "loss" or None when nothing has settled.
    """
    current_type: Optional[str]
    current_count: int
    longest_win_streak: int
    longest_lose_streak: int


@dataclass(frozen=True)
class SizeBucket:
    label: str
    count: int
    profit: Decimal


@dataclass(frozen=True)
class AdvancedAnalytics:
    profit_over_time: Tuple[ProfitPoint, ...]
    profit_by_day_of_week: Tuple[DayOfWeekStats, ...]
    monthly_trends: Tuple[MonthlyTrend, ...]
    best_month_roi: Decimal
    worst_month_roi: Decimal
    streaks: StreakStats
    bet_size_distribution: Tuple[SizeBucket, ...]


@dataclass(frozen=True)
class UnitPnL:
    """
    Results expressed in betting units.

    A bet's profit in units is ``profit * stake_units / stake``, i.e. its
    profit divided by the unit size frozen when it was placed. Bets placed
    while units were undefined are left out.
    """
    total_units_wagered: Decimal
    units_won: Decimal
    units_lost: Decimal
    avg_unit_size: Decimal
    unit_profit_loss: Decimal


# ============================================================================
# Selection
# ============================================================================

def settled_in_range(
    bets: Iterable[Bet],
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None
) -> List[Bet]:
    """Settled bets whose ``created_at`` lies in ``[date_from, date_to]``."""
    start = ensure_utc(date_from) if date_from is not None else None
    end = ensure_utc(date_to) if date_to is not None else None

    selected = []
    for bet in bets:
        if not bet.is_settled:
            continue
        if start is not None or end is not None:
            if bet.created_at is None:
                continue
            if start is not None and bet.created_at < start:
                continue
            if end is not None and bet.created_at > end:
                continue
        selected.append(bet)
    return selected


def _chronological(bets: Iterable[Bet]) -> List[Bet]:
    return sorted(bets, key=lambda b: (b.settlement_time or _EPOCH, b.id))


def _category_getter(category: Optional[CategoryKey]) -> Callable[[Bet], str]:
    if category is None:
        return attrgetter("bet_type")
    if isinstance(category, str):
        return attrgetter(category)
    return category


def _ratio(part: Decimal, whole: Decimal) -> Decimal:
    return quantize(percent(part, whole))


# ============================================================================
# Headline Analytics
# ============================================================================

def profit_by_category(bets: Sequence[Bet], category: Optional[CategoryKey] = None) -> List[CategoryStats]:
    """
    Group settled bets by ``category`` (attribute name or callable).

    Bets with an empty key are grouped under "other".
    """
    key_of = _category_getter(category)
    groups = OrderedDict()
    for bet in bets:
        groups.setdefault(key_of(bet) or "other", []).append(bet)

    stats = []
    for key, members in groups.items():
        wins = sum(1 for b in members if b.status is BetStatus.WON)
        profit = sum((b.profit for b in members), ZERO)
        staked = sum((b.stake for b in members), ZERO)
        stats.append(CategoryStats(
            key=key,
            total_bets=len(members),
            winning_bets=wins,
            profit=profit,
            total_staked=staked,
            win_rate=_ratio(Decimal(wins), Decimal(len(members))),
            roi=_ratio(profit, staked)
        ))
    return sorted(stats, key=lambda s: s.profit, reverse=True)


def calculate_analytics(
    bets: Iterable[Bet],
    starting_balance: Decimal,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    category: Optional[CategoryKey] = None
) -> BetAnalytics:
    """
    Win rate, averages, ROI and category breakdown over settled bets.

    Args:
        bets: Bets of one bankroll (pending bets are ignored)
        starting_balance: Basis for ``net_profit_percent``
        date_from: Inclusive lower bound on ``created_at``
        date_to: Inclusive upper bound on ``created_at``
        category: Attribute name or callable giving each bet's group
            (defaults to ``bet_type``)

    Returns:
        BetAnalytics with every ratio defaulting to 0 on empty input
    """
    starting_balance = to_decimal(starting_balance, "starting_balance")
    settled = settled_in_range(bets, date_from, date_to)

    won = [b for b in settled if b.status is BetStatus.WON]
    lost = [b for b in settled if b.status is BetStatus.LOST]
    total = len(settled)

    net_profit = sum((b.profit for b in settled), ZERO)
    total_staked = sum((b.stake for b in settled), ZERO)
    units = [b.stake_units for b in settled if b.stake_units is not None]

    return BetAnalytics(
        total_bets=total,
        winning_bets=len(won),
        losing_bets=len(lost),
        win_rate=_ratio(Decimal(len(won)), Decimal(total)),
        net_profit=net_profit,
        net_profit_percent=_ratio(net_profit, starting_balance),
        avg_win_amount=quantize(safe_divide(sum((b.profit for b in won), ZERO), Decimal(len(won)))),
        avg_loss_amount=quantize(safe_divide(sum((b.stake for b in lost), ZERO), Decimal(len(lost)))),
        avg_bet_size=quantize(safe_divide(total_staked, Decimal(total))),
        avg_bet_size_units=quantize(safe_divide(sum(units, ZERO), Decimal(len(units))), 4),
        total_staked=total_staked,
        roi=_ratio(net_profit, total_staked),
        profit_by_type=tuple(profit_by_category(settled, category))
    )


# ============================================================================
# Breakdowns
# ============================================================================

def profit_over_time(bets: Sequence[Bet]) -> List[ProfitPoint]:
    """Per-bet and cumulative profit in settlement order."""
    points = []
    cumulative = ZERO
    for bet in _chronological(bets):
        cumulative += bet.profit
        points.append(ProfitPoint(
            timestamp=bet.settlement_time,
            bet_id=bet.id,
            profit=bet.profit,
            cumulative_profit=cumulative
        ))
    return points


def profit_by_day_of_week(bets: Sequence[Bet], tz: tzinfo = timezone.utc) -> List[DayOfWeekStats]:
    """Profit and count per local weekday of placement, Monday first."""
    profit = [ZERO] * 7
    count = [0] * 7
    for bet in bets:
        if bet.created_at is None:
            continue
        day = bet.created_at.astimezone(tz).weekday()
        profit[day] += bet.profit
        count[day] += 1

    return [
        DayOfWeekStats(day=name, profit=profit[i], bet_count=count[i])
        for i, name in enumerate(DAYS_OF_WEEK)
    ]


def monthly_trends(bets: Sequence[Bet], tz: tzinfo = timezone.utc) -> List[MonthlyTrend]:
    """Per local month of placement (YYYY-MM), oldest first."""
    months = {}
    for bet in bets:
        if bet.created_at is None:
            continue
        months.setdefault(bet.created_at.astimezone(tz).strftime("%Y-%m"), []).append(bet)

    trends = []
    for month in sorted(months):
        members = months[month]
        wins = sum(1 for b in members if b.status is BetStatus.WON)
        profit = sum((b.profit for b in members), ZERO)
        staked = sum((b.stake for b in members), ZERO)
        trends.append(MonthlyTrend(
            month=month,
            profit=profit,
            bet_count=len(members),
            win_rate=_ratio(Decimal(wins), Decimal(len(members))),
            roi=_ratio(profit, staked)
        ))
    return trends


def streaks(bets: Sequence[Bet]) -> StreakStats:
    """Current and longest win/loss runs in settlement order."""
    longest = {"win": 0, "loss": 0}
    current_type, run = None, 0

    for bet in _chronological(bets):
        kind = "win" if bet.status is BetStatus.WON else "loss"
        if kind == current_type:
            run += 1
        else:
            current_type, run = kind, 1
        longest[kind] = max(longest[kind], run)

    return StreakStats(
        current_type=current_type,
        current_count=run,
        longest_win_streak=longest["win"],
        longest_lose_streak=longest["loss"]
    )


def bet_size_distribution(bets: Sequence[Bet]) -> List[SizeBucket]:
    """Count and profit per stake bucket; every bucket is reported."""
    counts = [0] * len(BET_SIZE_BUCKETS)
    profits = [ZERO] * len(BET_SIZE_BUCKETS)
    for bet in bets:
        for i, (upper, _) in enumerate(BET_SIZE_BUCKETS):
            if upper is None or bet.stake <= upper:
                counts[i] += 1
                profits[i] += bet.profit
                break

    return [
        SizeBucket(label=label, count=counts[i], profit=profits[i])
        for i, (_, label) in enumerate(BET_SIZE_BUCKETS)
    ]


def calculate_advanced_analytics(
    bets: Iterable[Bet],
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    tz: tzinfo = timezone.utc
) -> AdvancedAnalytics:
    """Time, streak and stake-size breakdowns over settled bets in range."""
    settled = settled_in_range(bets, date_from, date_to)
    trends = monthly_trends(settled, tz)
    rois = [t.roi for t in trends]

    return AdvancedAnalytics(
        profit_over_time=tuple(profit_over_time(settled)),
        profit_by_day_of_week=tuple(profit_by_day_of_week(settled, tz)),
        monthly_trends=tuple(trends),
        best_month_roi=max(rois) if rois else ZERO,
        worst_month_roi=min(rois) if rois else ZERO,
        streaks=streaks(settled),
        bet_size_distribution=tuple(bet_size_distribution(settled))
    )


def unit_pnl(
    bets: Iterable[Bet],
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None
) -> UnitPnL:
    """Units wagered, won and lost, and profit measured in units."""
    settled = [
        b for b in settled_in_range(bets, date_from, date_to)
        if b.stake_units is not None and b.stake_units > 0
    ]

    wagered = sum((b.stake_units for b in settled), ZERO)
    won = sum((b.stake_units for b in settled if b.status is BetStatus.WON), ZERO)
    lost = sum((b.stake_units for b in settled if b.status is BetStatus.LOST), ZERO)
    staked = sum((b.stake for b in settled), ZERO)
    pnl = sum((b.profit * b.stake_units / b.stake for b in settled), ZERO)

    return UnitPnL(
        total_units_wagered=wagered,
        units_won=won,
        units_lost=lost,
        avg_unit_size=quantize(safe_divide(staked, wagered)),
        unit_profit_loss=quantize(pnl, 4)
    )
