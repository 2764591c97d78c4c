"""
Balance Calculator.

Folds a bankroll's starting balance and its ledger into the current
balance and a time-ordered balance history. The ledger is the ground
truth: bets only affect the balance through their settlement entries.

Example:
    >>> from decimal import Decimal
    >>> balance = current_balance(bankroll, transactions)
    >>> history = balance_history(bankroll, transactions)
    >>> history[-1].balance == balance
    True
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from betledger.betting.models import Bankroll, Transaction, TransactionType
from betledger.core.errors import ValidationError
from betledger.core.money import ZERO


@dataclass(frozen=True)
class BalancePoint:
    """Balance after one ledger entry."""
    timestamp: Optional[datetime]
    balance: Decimal
    delta: Decimal


@dataclass(frozen=True)
class LedgerTotals:
    """Gross money movements across a ledger."""
    total_deposits: Decimal
    total_withdrawals: Decimal
    realized_profit: Decimal


def _check_owner(bankroll: Bankroll, transactions: Sequence[Transaction]) -> None:
    for tx in transactions:
        if tx.bankroll_id != bankroll.id:
            raise ValidationError(
                f"transaction {tx.id} belongs to bankroll {tx.bankroll_id}, not {bankroll.id}"
            )


def order_ledger(transactions: Iterable[Transaction]) -> List[Transaction]:
    """
    Sort ascending by ``created_at``; equal timestamps fall back to the
    insertion ``sequence`` so the order is never arbitrary.
    """
    return sorted(transactions, key=lambda tx: tx.sort_key)


def current_balance(bankroll: Bankroll, transactions: Sequence[Transaction]) -> Decimal:
    """
    Current balance = starting balance + sum of signed ledger amounts.

    Exact Decimal arithmetic, no rounding.
    """
    _check_owner(bankroll, transactions)
    return bankroll.starting_balance + sum(
        (tx.signed_amount for tx in transactions), ZERO
    )


def balance_history(
    bankroll: Bankroll,
    transactions: Sequence[Transaction]
) -> List[BalancePoint]:
    """
    Running fold over the ordered ledger, one point per entry.

    An empty ledger yields a single point at bankroll creation carrying
    the starting balance.
    """
    _check_owner(bankroll, transactions)

    if not transactions:
        return [BalancePoint(
            timestamp=bankroll.created_at,
            balance=bankroll.starting_balance,
            delta=ZERO
        )]

    history = []
    running = bankroll.starting_balance
    for tx in order_ledger(transactions):
        delta = tx.signed_amount
        running += delta
        history.append(BalancePoint(timestamp=tx.created_at, balance=running, delta=delta))
    return history


def ledger_totals(transactions: Iterable[Transaction]) -> LedgerTotals:
    """
    Total deposits (deposit + transfer_in), total withdrawals
    (withdrawal + transfer_out) and realized profit (profit - loss).
    """
    deposits = withdrawals = profit = ZERO
    for tx in transactions:
        if tx.type in (TransactionType.DEPOSIT, TransactionType.TRANSFER_IN):
            deposits += tx.amount
        elif tx.type in (TransactionType.WITHDRAWAL, TransactionType.TRANSFER_OUT):
            withdrawals += tx.amount
        elif tx.type is TransactionType.PROFIT:
            profit += tx.amount
        elif tx.type is TransactionType.LOSS:
            profit -= tx.amount

    return LedgerTotals(
        total_deposits=deposits,
        total_withdrawals=withdrawals,
        realized_profit=profit
    )
