"""
Bet settlement state machine.

A bet moves one way only: ``pending -> won | lost``. Settling posts exactly
one ledger entry keyed by the bet id:

    won   profit  actual_payout - stake
    lost  loss    stake           (no payout is stored)

Re-submitting the same outcome with a new payout is a correction: the
existing entry's amount is adjusted in place and no second entry is
written. Any other transition is a conflict.

This module decides *what* to write; ``BankrollRepository.settle_bet``
performs the write under the per-bankroll lock.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from betledger.betting.models import Bet, BetStatus, Transaction, TransactionType, coerce_enum
from betledger.core.datetime_utils import ensure_utc
from betledger.core.errors import ConflictError, ValidationError
from betledger.core.money import Number, to_optional_decimal


@dataclass(frozen=True)
class SettlementPlan:
    """
    Outcome of applying a settlement request to a bet.

    Attributes:
        bet: The bet as it should be stored after settlement
        entry_type: PROFIT or LOSS
        entry_amount: Positive magnitude for the ledger entry
        adjusts_existing: True when an entry for this bet already exists
            and must be updated rather than appended
        unchanged: True when the request repeats the stored settlement
    """
    bet: Bet
    entry_type: TransactionType
    entry_amount: Decimal
    adjusts_existing: bool
    unchanged: bool = False


def settlement_entry(bet: Bet):
    """(type, amount) of the ledger entry a settled bet carries."""
    if bet.status is BetStatus.WON:
        return TransactionType.PROFIT, bet.actual_payout - bet.stake
    if bet.status is BetStatus.LOST:
        return TransactionType.LOSS, bet.stake
    raise ValidationError(f"bet {bet.id} is pending and has no settlement entry")


def plan_settlement(
    bet: Bet,
    status,
    actual_payout: Optional[Number],
    settled_at: datetime,
    existing_entry: Optional[Transaction] = None
) -> SettlementPlan:
    """
    Validate a settlement request and describe the resulting write.

    Raises:
        ValidationError: Missing or too-small payout on a win
        ConflictError: Changing a settled outcome or returning to pending
    """
    target = coerce_enum(BetStatus, status, "status")
    payout = to_optional_decimal(actual_payout, "actual_payout")

    if target is BetStatus.PENDING:
        if bet.is_settled:
            raise ConflictError(f"bet {bet.id} is {bet.status.value} and cannot return to pending")
        raise ValidationError("settlement status must be won or lost")

    if bet.is_settled and target is not bet.status:
        raise ConflictError(
            f"bet {bet.id} is already {bet.status.value}; cannot settle as {target.value}"
        )

    if target is BetStatus.WON:
        if payout is None:
            raise ValidationError("won bets require actual_payout")
        if payout < bet.stake:
            raise ValidationError(
                f"actual_payout {payout} is less than stake {bet.stake} on a won bet"
            )
    else:
        payout = None

    if existing_entry is not None and existing_entry.ref_bet_id != bet.id:
        raise ValidationError(
            f"transaction {existing_entry.id} does not settle bet {bet.id}"
        )

    settled = replace(
        bet,
        status=target,
        actual_payout=payout,
        settled_at=bet.settled_at or ensure_utc(settled_at)
    )
    entry_type, entry_amount = settlement_entry(settled)

    unchanged = (
        existing_entry is not None
        and existing_entry.type is entry_type
        and existing_entry.amount == entry_amount
        and bet.status is target
    )

    return SettlementPlan(
        bet=settled,
        entry_type=entry_type,
        entry_amount=entry_amount,
        adjusts_existing=existing_entry is not None,
        unchanged=unchanged
    )
