"""
Drawdown Tracker.

Consumes a balance history and reports the running peak, the current
drawdown and the maximum drawdown, in currency and as a percentage of
the peak that was active at the time.

    running_peak[i] = max(balance[0..i])
    drawdown[i]     = running_peak[i] - balance[i]

``max_drawdown_percent`` is measured against the peak in force at the
point of maximum drawdown, not the final peak. Ties keep the earliest
occurrence.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from betledger.betting.balance import BalancePoint
from betledger.core.money import ZERO, percent


@dataclass(frozen=True)
class DrawdownStats:
    """
    Peak-to-trough statistics for a balance history.

    Attributes:
        peak_balance: Highest balance seen (final running peak)
        current_drawdown: Final peak minus final balance
        current_drawdown_percent: current_drawdown / peak * 100
        max_drawdown: Largest drawdown seen
        max_drawdown_percent: max_drawdown / peak active at that point * 100
        recovery_since_max: Current balance minus the trough at max drawdown
        running_peak: Running peak per history point
        drawdowns: Drawdown per history point
    """
    peak_balance: Decimal
    current_drawdown: Decimal
    current_drawdown_percent: Decimal
    max_drawdown: Decimal
    max_drawdown_percent: Decimal
    recovery_since_max: Decimal
    running_peak: Tuple[Decimal, ...] = ()
    drawdowns: Tuple[Decimal, ...] = ()


def running_peaks(
    history: Sequence[BalancePoint],
    starting_balance: Optional[Decimal] = None
) -> List[Decimal]:
    """
    Running maximum of the balance series.

    If ``starting_balance`` is given the peak is seeded with it, so a loss
    on the very first ledger entry registers as a drawdown.
    """
    peaks = []
    peak = starting_balance
    for point in history:
        if peak is None or point.balance > peak:
            peak = point.balance
        peaks.append(peak)
    return peaks


def analyze_drawdown(
    history: Sequence[BalancePoint],
    starting_balance: Optional[Decimal] = None
) -> DrawdownStats:
    """
    Compute drawdown statistics for a balance history.

    Guarantees ``max_drawdown >= current_drawdown >= 0``; both are 0 when
    the balance never fell below a prior peak.
    """
    if not history:
        peak = starting_balance if starting_balance is not None else ZERO
        return DrawdownStats(
            peak_balance=peak,
            current_drawdown=ZERO,
            current_drawdown_percent=ZERO,
            max_drawdown=ZERO,
            max_drawdown_percent=ZERO,
            recovery_since_max=ZERO
        )

    peaks = running_peaks(history, starting_balance)
    drawdowns = [peak - point.balance for peak, point in zip(peaks, history)]

    max_index = 0
    for i, dd in enumerate(drawdowns):
        if dd > drawdowns[max_index]:
            max_index = i

    max_drawdown = drawdowns[max_index]
    current_drawdown = drawdowns[-1]
    final_peak = peaks[-1]
    final_balance = history[-1].balance

    if max_drawdown > 0:
        trough = history[max_index].balance
        recovery = final_balance - trough
    else:
        recovery = ZERO

    return DrawdownStats(
        peak_balance=final_peak,
        current_drawdown=current_drawdown,
        current_drawdown_percent=percent(current_drawdown, final_peak) if final_peak > 0 else ZERO,
        max_drawdown=max_drawdown,
        max_drawdown_percent=(
            percent(max_drawdown, peaks[max_index]) if peaks[max_index] > 0 else ZERO
        ),
        recovery_since_max=recovery,
        running_peak=tuple(peaks),
        drawdowns=tuple(drawdowns)
    )
