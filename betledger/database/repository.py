"""
Bankroll repository.

The only code that reads or writes the ORM tables. Every public method
returns immutable domain records, and every write method commits its own
unit of work.

Ledger writes for one bankroll are serialised by a process-wide lock per
bankroll id, which keeps ``sequence`` gap-free and makes settlement
check-then-write atomic. The unique ``ref_bet_id`` column backs this up
at the database level for settlement entries.
"""

import logging
import threading
import weakref
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from betledger.betting import models as domain
from betledger.betting.balance import current_balance, ledger_totals
from betledger.betting.goals import GoalEvaluation, evaluate_goal
from betledger.betting.models import BetStatus, GoalStatus, TransactionType, UnitMode
from betledger.betting.settlement import plan_settlement
from betledger.core.config import settings
from betledger.core.datetime_utils import ensure_utc, utc_now
from betledger.core.errors import ConflictError, NotFoundError, ValidationError
from betledger.core.money import Number, quantize, to_decimal, to_optional_decimal
from betledger.database import models as orm
from betledger.strategies.units import defined_or_none, stake_to_units

logger = logging.getLogger(__name__)

IMMUTABLE_BANKROLL_FIELDS = frozenset({"starting_balance", "currency", "unit_mode"})
MUTABLE_BANKROLL_FIELDS = frozenset({
    "name", "unit_value", "max_bet_pct", "daily_loss_limit_pct",
    "weekly_loss_limit_pct", "kelly_fraction",
})

# Entries disappear once no caller holds the lock
_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def bankroll_lock(bankroll_id: str) -> threading.Lock:
    """Process-wide write lock for one bankroll's ledger."""
    with _locks_guard:
        lock = _locks.get(bankroll_id)
        if lock is None:
            lock = _locks[bankroll_id] = threading.Lock()
        return lock


def _money(value: Optional[Number], field: str) -> Optional[Decimal]:
    value = to_optional_decimal(value, field)
    return None if value is None else quantize(value, settings.MONEY_PLACES)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Everything the calculators need for one bankroll, read at one instant."""
    bankroll: domain.Bankroll
    transactions: Tuple[domain.Transaction, ...]
    bets: Tuple[domain.Bet, ...]
    goals: Tuple[domain.BankrollGoal, ...]

    @property
    def current_balance(self) -> Decimal:
        return current_balance(self.bankroll, self.transactions)


class BankrollRepository:
    """
    Persistence operations for bankrolls, their ledger, bets and goals.

    Args:
        session: SQLAlchemy session; the repository commits on it

    Example:
        >>> repo = BankrollRepository(session)
        >>> bankroll = repo.create_bankroll("user-1", "1000", "fixed", "10")
        >>> bet = repo.place_bet(bankroll.id, stake="50", potential_payout="125")
        >>> bet, entry = repo.settle_bet(bet.id, "won", actual_payout="125")
        >>> repo.load_snapshot(bankroll.id).current_balance
        Decimal('1075.00')
    """

    def __init__(self, session: Session):
        self.session = session

    # ========================================================================
    # Bankrolls
    # ========================================================================

    def _bankroll_row(self, bankroll_id: str, owner_id: Optional[str] = None) -> orm.Bankroll:
        row = self.session.get(orm.Bankroll, bankroll_id)
        if row is None or (owner_id is not None and row.owner_id != owner_id):
            raise NotFoundError("bankroll", bankroll_id)
        return row

    def create_bankroll(
        self,
        owner_id: str,
        starting_balance: Number,
        unit_mode,
        unit_value: Number,
        name: str = "",
        currency: str = "USD",
        max_bet_pct: Optional[Number] = None,
        daily_loss_limit_pct: Optional[Number] = None,
        weekly_loss_limit_pct: Optional[Number] = None,
        kelly_fraction: Optional[Number] = None
    ) -> domain.Bankroll:
        """
        Create a bankroll. The owner's first bankroll starts active.

        No opening deposit is written: ``starting_balance`` is the base
        the ledger folds onto.
        """
        record = domain.Bankroll(
            id="",
            owner_id=owner_id,
            name=name,
            currency=currency,
            starting_balance=_money(starting_balance, "starting_balance"),
            unit_mode=unit_mode,
            unit_value=quantize(to_decimal(unit_value, "unit_value"), settings.UNIT_PLACES),
            max_bet_pct=max_bet_pct if max_bet_pct is not None else settings.DEFAULT_MAX_BET_PCT,
            daily_loss_limit_pct=daily_loss_limit_pct,
            weekly_loss_limit_pct=weekly_loss_limit_pct,
            kelly_fraction=(
                kelly_fraction if kelly_fraction is not None else settings.DEFAULT_KELLY_FRACTION
            )
        )
        if record.unit_value <= 0:
            raise ValidationError(f"unit_value rounds to zero: {unit_value}")

        has_any = self.session.scalar(
            select(func.count()).select_from(orm.Bankroll).where(orm.Bankroll.owner_id == owner_id)
        )

        row = orm.Bankroll(
            owner_id=record.owner_id,
            name=record.name,
            currency=record.currency,
            starting_balance=record.starting_balance,
            unit_mode=record.unit_mode,
            unit_value=record.unit_value,
            max_bet_pct=record.max_bet_pct,
            daily_loss_limit_pct=record.daily_loss_limit_pct,
            weekly_loss_limit_pct=record.weekly_loss_limit_pct,
            kelly_fraction=record.kelly_fraction,
            is_active=not has_any
        )
        self.session.add(row)
        self.session.commit()

        logger.info(f"Created bankroll {row.id} for {owner_id} (active={row.is_active})")
        return row.to_domain()

    def get_bankroll(self, bankroll_id: str, owner_id: Optional[str] = None) -> domain.Bankroll:
        return self._bankroll_row(bankroll_id, owner_id).to_domain()

    def list_bankrolls(self, owner_id: str) -> List[domain.Bankroll]:
        rows = self.session.scalars(
            select(orm.Bankroll)
            .where(orm.Bankroll.owner_id == owner_id)
            .order_by(orm.Bankroll.created_at, orm.Bankroll.id)
        )
        return [row.to_domain() for row in rows]

    def get_active_bankroll(self, owner_id: str) -> Optional[domain.Bankroll]:
        row = self.session.scalars(
            select(orm.Bankroll).where(
                orm.Bankroll.owner_id == owner_id,
                orm.Bankroll.is_active.is_(True)
            )
        ).first()
        return row.to_domain() if row is not None else None

    def update_bankroll(self, bankroll_id: str, owner_id: str, **changes) -> domain.Bankroll:
        """
        Update mutable settings.

        Raises:
            ConflictError: Attempt to change starting_balance, currency or unit_mode
            ValidationError: Unknown field or out-of-range value
        """
        row = self._bankroll_row(bankroll_id, owner_id)
        current = row.to_domain()

        for field in IMMUTABLE_BANKROLL_FIELDS & changes.keys():
            if field == "unit_mode":
                requested = domain.coerce_enum(UnitMode, changes[field], field)
            elif field == "starting_balance":
                requested = _money(changes[field], field)
            else:
                requested = changes[field]
            if requested != getattr(current, field):
                logger.warning(f"Refused change of immutable {field} on bankroll {bankroll_id}")
                raise ConflictError(f"{field} cannot be changed after creation")

        unknown = changes.keys() - IMMUTABLE_BANKROLL_FIELDS - MUTABLE_BANKROLL_FIELDS
        if unknown:
            raise ValidationError(f"Unknown bankroll fields: {', '.join(sorted(unknown))}")

        updates = {k: v for k, v in changes.items() if k in MUTABLE_BANKROLL_FIELDS}
        if "unit_value" in updates:
            updates["unit_value"] = quantize(
                to_decimal(updates["unit_value"], "unit_value"), settings.UNIT_PLACES
            )
        updated = replace(current, **updates)

        for field in updates:
            setattr(row, field, getattr(updated, field))
        self.session.commit()

        logger.info(f"Updated bankroll {bankroll_id}: {', '.join(sorted(updates))}")
        return row.to_domain()

    def activate(self, bankroll_id: str, owner_id: str) -> domain.Bankroll:
        """Make this the owner's only active bankroll, in one commit."""
        target = self._bankroll_row(bankroll_id, owner_id)
        siblings = self.session.scalars(
            select(orm.Bankroll).where(
                orm.Bankroll.owner_id == owner_id,
                orm.Bankroll.id != bankroll_id
            )
        )
        for row in siblings:
            row.is_active = False
        target.is_active = True
        self.session.commit()

        logger.info(f"Activated bankroll {bankroll_id} for {owner_id}")
        return target.to_domain()

    def deactivate(self, bankroll_id: str, owner_id: str) -> domain.Bankroll:
        row = self._bankroll_row(bankroll_id, owner_id)
        row.is_active = False
        self.session.commit()

        logger.info(f"Deactivated bankroll {bankroll_id}")
        return row.to_domain()

    def delete_bankroll(self, bankroll_id: str, owner_id: str) -> None:
        """
        Delete a bankroll with its ledger, bets and goals.

        Raises:
            ConflictError: If any of its bets has settled
        """
        row = self._bankroll_row(bankroll_id, owner_id)
        settled = self.session.scalar(
            select(func.count()).select_from(orm.Bet).where(
                orm.Bet.bankroll_id == bankroll_id,
                orm.Bet.status != BetStatus.PENDING
            )
        )
        if settled:
            logger.warning(f"Refused delete of bankroll {bankroll_id}: {settled} settled bets")
            raise ConflictError(
                f"bankroll {bankroll_id} has {settled} settled bets and cannot be deleted"
            )

        self.session.delete(row)
        self.session.commit()
        logger.info(f"Deleted bankroll {bankroll_id}")

    # ========================================================================
    # Ledger
    # ========================================================================

    def _next_sequence(self, bankroll_id: str) -> int:
        last = self.session.scalar(
            select(func.max(orm.BankrollTransaction.sequence))
            .where(orm.BankrollTransaction.bankroll_id == bankroll_id)
        )
        return (last or 0) + 1

    def _ledger_rows(self, bankroll_id: str) -> List[orm.BankrollTransaction]:
        return list(self.session.scalars(
            select(orm.BankrollTransaction)
            .where(orm.BankrollTransaction.bankroll_id == bankroll_id)
            .order_by(orm.BankrollTransaction.created_at, orm.BankrollTransaction.sequence)
        ))

    def _append(
        self,
        bankroll_id: str,
        tx_type: TransactionType,
        amount: Decimal,
        reason: Optional[str] = None,
        ref_bet_id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> orm.BankrollTransaction:
        """Add one entry to the session. Caller holds the bankroll lock."""
        row = orm.BankrollTransaction(
            bankroll_id=bankroll_id,
            type=tx_type,
            amount=amount,
            reason=reason,
            ref_bet_id=ref_bet_id,
            sequence=self._next_sequence(bankroll_id),
            created_at=ensure_utc(created_at) if created_at is not None else utc_now()
        )
        self.session.add(row)
        return row

    def record_transaction(
        self,
        bankroll_id: str,
        tx_type,
        amount: Number,
        reason: Optional[str] = None,
        owner_id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> domain.Transaction:
        """
        Append a deposit, withdrawal, adjustment or transfer entry.

        Profit and loss entries are written only by ``settle_bet``.
        Adjustments carry a signed amount; every other type a positive one.
        """
        self._bankroll_row(bankroll_id, owner_id)
        tx_type = domain.coerce_enum(TransactionType, tx_type, "type")
        if tx_type.is_settlement:
            raise ValidationError(f"{tx_type.value} entries are written by bet settlement")

        value = _money(amount, "amount")
        if tx_type is TransactionType.ADJUSTMENT:
            if value == 0:
                raise ValidationError("adjustment amount must be non-zero")
        elif value <= 0:
            raise ValidationError(f"{tx_type.value} amount must be > 0, got {value}")

        with bankroll_lock(bankroll_id):
            row = self._append(bankroll_id, tx_type, value, reason, created_at=created_at)
            self.session.commit()

        logger.info(f"Recorded {tx_type.value} of {value} on bankroll {bankroll_id}")
        return row.to_domain()

    def transfer(
        self,
        from_bankroll_id: str,
        to_bankroll_id: str,
        amount: Number,
        owner_id: str,
        reason: Optional[str] = None
    ) -> Tuple[domain.Transaction, domain.Transaction]:
        """Move money between two of the owner's bankrolls in one commit."""
        if from_bankroll_id == to_bankroll_id:
            raise ValidationError("cannot transfer a bankroll to itself")
        self._bankroll_row(from_bankroll_id, owner_id)
        self._bankroll_row(to_bankroll_id, owner_id)

        value = _money(amount, "amount")
        if value <= 0:
            raise ValidationError(f"transfer amount must be > 0, got {value}")

        # Fixed lock order avoids deadlock between opposite transfers
        first, second = sorted((from_bankroll_id, to_bankroll_id))
        with bankroll_lock(first), bankroll_lock(second):
            now = utc_now()
            out_row = self._append(
                from_bankroll_id, TransactionType.TRANSFER_OUT, value,
                reason or f"Transfer to {to_bankroll_id}", created_at=now
            )
            in_row = self._append(
                to_bankroll_id, TransactionType.TRANSFER_IN, value,
                reason or f"Transfer from {from_bankroll_id}", created_at=now
            )
            self.session.commit()

        logger.info(f"Transferred {value} from {from_bankroll_id} to {to_bankroll_id}")
        return out_row.to_domain(), in_row.to_domain()

    def list_transactions(
        self,
        bankroll_id: str,
        owner_id: Optional[str] = None
    ) -> List[domain.Transaction]:
        self._bankroll_row(bankroll_id, owner_id)
        return [row.to_domain() for row in self._ledger_rows(bankroll_id)]

    # ========================================================================
    # Bets
    # ========================================================================

    def _bet_row(self, bet_id: str, owner_id: Optional[str] = None) -> orm.Bet:
        row = self.session.get(orm.Bet, bet_id)
        if row is None or (owner_id is not None and row.bankroll.owner_id != owner_id):
            raise NotFoundError("bet", bet_id)
        return row

    def place_bet(
        self,
        bankroll_id: str,
        stake: Number,
        potential_payout: Number,
        owner_id: Optional[str] = None,
        sport: str = "",
        event: str = "",
        bet_type: str = "",
        odds: str = "",
        created_at: Optional[datetime] = None
    ) -> domain.Bet:
        """
        Record a pending bet, freezing ``stake_units`` at the current balance.

        The stake does not touch the ledger until the bet settles.
        """
        bankroll_row = self._bankroll_row(bankroll_id, owner_id)
        bankroll = bankroll_row.to_domain()
        stake = _money(stake, "stake")
        payout = _money(potential_payout, "potential_payout")

        with bankroll_lock(bankroll_id):
            ledger = [row.to_domain() for row in self._ledger_rows(bankroll_id)]
            balance = current_balance(bankroll, ledger)
            units = defined_or_none(stake_to_units(stake, bankroll, balance))

            record = domain.Bet(
                id="",
                bankroll_id=bankroll_id,
                stake=stake,
                potential_payout=payout,
                stake_units=quantize(units, settings.UNIT_PLACES) if units is not None else None,
                sport=sport,
                event=event,
                bet_type=bet_type,
                odds=odds
            )
            row = orm.Bet(
                bankroll_id=bankroll_id,
                stake=record.stake,
                potential_payout=record.potential_payout,
                stake_units=record.stake_units,
                status=BetStatus.PENDING,
                sport=sport,
                event=event,
                bet_type=bet_type,
                odds=odds,
                created_at=ensure_utc(created_at) if created_at is not None else utc_now()
            )
            self.session.add(row)
            self.session.commit()

        logger.info(f"Placed bet {row.id} on bankroll {bankroll_id}: stake {stake}")
        return row.to_domain()

    def get_bet(self, bet_id: str, owner_id: Optional[str] = None) -> domain.Bet:
        return self._bet_row(bet_id, owner_id).to_domain()

    def list_bets(
        self,
        bankroll_id: str,
        owner_id: Optional[str] = None,
        status: Optional[str] = None
    ) -> List[domain.Bet]:
        self._bankroll_row(bankroll_id, owner_id)
        query = select(orm.Bet).where(orm.Bet.bankroll_id == bankroll_id)
        if status is not None:
            query = query.where(orm.Bet.status == domain.coerce_enum(BetStatus, status, "status"))
        rows = self.session.scalars(query.order_by(orm.Bet.created_at, orm.Bet.id))
        return [row.to_domain() for row in rows]

    def settle_bet(
        self,
        bet_id: str,
        status,
        actual_payout: Optional[Number] = None,
        owner_id: Optional[str] = None,
        settled_at: Optional[datetime] = None
    ) -> Tuple[domain.Bet, domain.Transaction]:
        """
        Settle a bet, or correct the payout of an already-won bet.

        Exactly one profit/loss entry exists per settled bet. A correction
        rewrites that entry's amount; it never appends a second one.

        Raises:
            ConflictError: Changing the outcome or returning to pending
            ValidationError: Missing or too-small payout on a win
        """
        bankroll_id = self._bet_row(bet_id, owner_id).bankroll_id

        with bankroll_lock(bankroll_id):
            # Re-read under the lock so a concurrent settlement is visible
            self.session.expire_all()
            row = self._bet_row(bet_id, owner_id)
            entry_row = self.session.scalars(
                select(orm.BankrollTransaction)
                .where(orm.BankrollTransaction.ref_bet_id == bet_id)
            ).first()

            try:
                plan = plan_settlement(
                    row.to_domain(),
                    status,
                    _money(actual_payout, "actual_payout"),
                    settled_at or utc_now(),
                    entry_row.to_domain() if entry_row is not None else None
                )
            except ConflictError:
                logger.warning(f"Refused settlement of bet {bet_id} as {status}")
                raise

            if plan.unchanged:
                return row.to_domain(), entry_row.to_domain()

            row.status = plan.bet.status
            row.actual_payout = plan.bet.actual_payout
            row.settled_at = plan.bet.settled_at

            if entry_row is not None:
                entry_row.type = plan.entry_type
                entry_row.amount = plan.entry_amount
            else:
                entry_row = self._append(
                    bankroll_id,
                    plan.entry_type,
                    plan.entry_amount,
                    reason=f"Bet {plan.bet.status.value}: {row.event or bet_id}",
                    ref_bet_id=bet_id,
                    created_at=plan.bet.settled_at
                )

            try:
                self.session.commit()
            except IntegrityError as e:
                self.session.rollback()
                logger.warning(f"Duplicate settlement entry for bet {bet_id}")
                raise ConflictError(f"bet {bet_id} already has a settlement entry") from e

        if plan.adjusts_existing:
            logger.info(f"Reconciled settlement of bet {bet_id}: {plan.entry_type.value} {plan.entry_amount}")
        else:
            logger.info(f"Settled bet {bet_id} as {plan.bet.status.value}: {plan.entry_type.value} {plan.entry_amount}")
        return row.to_domain(), entry_row.to_domain()

    # ========================================================================
    # Goals
    # ========================================================================

    def _goal_row(self, goal_id: str, owner_id: Optional[str] = None) -> orm.BankrollGoal:
        row = self.session.get(orm.BankrollGoal, goal_id)
        if row is None or (owner_id is not None and row.bankroll.owner_id != owner_id):
            raise NotFoundError("goal", goal_id)
        return row

    def create_goal(
        self,
        bankroll_id: str,
        target_amount: Optional[Number] = None,
        target_profit: Optional[Number] = None,
        target_date: Optional[datetime] = None,
        owner_id: Optional[str] = None
    ) -> domain.BankrollGoal:
        self._bankroll_row(bankroll_id, owner_id)
        record = domain.BankrollGoal(
            id="",
            bankroll_id=bankroll_id,
            target_amount=_money(target_amount, "target_amount"),
            target_profit=_money(target_profit, "target_profit"),
            target_date=target_date
        )
        row = orm.BankrollGoal(
            bankroll_id=bankroll_id,
            target_amount=record.target_amount,
            target_profit=record.target_profit,
            target_date=record.target_date,
            status=GoalStatus.ACTIVE
        )
        self.session.add(row)
        self.session.commit()

        logger.info(f"Created goal {row.id} on bankroll {bankroll_id}")
        return row.to_domain()

    def get_goal(self, goal_id: str, owner_id: Optional[str] = None) -> domain.BankrollGoal:
        return self._goal_row(goal_id, owner_id).to_domain()

    def list_goals(self, bankroll_id: str, owner_id: Optional[str] = None) -> List[domain.BankrollGoal]:
        self._bankroll_row(bankroll_id, owner_id)
        rows = self.session.scalars(
            select(orm.BankrollGoal)
            .where(orm.BankrollGoal.bankroll_id == bankroll_id)
            .order_by(orm.BankrollGoal.created_at, orm.BankrollGoal.id)
        )
        return [row.to_domain() for row in rows]

    def update_goal(self, goal_id: str, owner_id: Optional[str] = None, **changes) -> domain.BankrollGoal:
        """
        Edit an active goal's targets or deadline.

        Status is never set directly; it changes only via ``evaluate_goals``.
        """
        allowed = {"target_amount", "target_profit", "target_date"}
        unknown = changes.keys() - allowed
        if unknown:
            raise ValidationError(f"Unknown goal fields: {', '.join(sorted(unknown))}")

        row = self._goal_row(goal_id, owner_id)
        current = row.to_domain()
        if current.is_terminal:
            raise ConflictError(f"goal {goal_id} is {current.status.value} and cannot be edited")

        for field in ("target_amount", "target_profit"):
            if field in changes:
                changes[field] = _money(changes[field], field)
        updated = replace(current, **changes)

        row.target_amount = updated.target_amount
        row.target_profit = updated.target_profit
        row.target_date = updated.target_date
        self.session.commit()
        return row.to_domain()

    def delete_goal(self, goal_id: str, owner_id: Optional[str] = None) -> None:
        row = self._goal_row(goal_id, owner_id)
        self.session.delete(row)
        self.session.commit()
        logger.info(f"Deleted goal {goal_id}")

    def evaluate_goals(
        self,
        bankroll_id: str,
        owner_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[GoalEvaluation]:
        """Evaluate every goal of the bankroll and persist status changes."""
        snapshot = self.load_snapshot(bankroll_id, owner_id)
        balance = snapshot.current_balance
        profit = ledger_totals(snapshot.transactions).realized_profit
        now = now or utc_now()

        evaluations = []
        for goal in snapshot.goals:
            result = evaluate_goal(goal, balance, profit, now)
            if result.changed:
                self._goal_row(goal.id).status = result.status
                logger.info(f"Goal {goal.id} is now {result.status.value}")
            evaluations.append(result)
        self.session.commit()
        return evaluations

    # ========================================================================
    # Snapshots
    # ========================================================================

    def load_snapshot(self, bankroll_id: str, owner_id: Optional[str] = None) -> LedgerSnapshot:
        """Read a bankroll with its full ledger, bets and goals."""
        bankroll = self._bankroll_row(bankroll_id, owner_id).to_domain()
        return LedgerSnapshot(
            bankroll=bankroll,
            transactions=tuple(row.to_domain() for row in self._ledger_rows(bankroll_id)),
            bets=tuple(self.list_bets(bankroll_id)),
            goals=tuple(self.list_goals(bankroll_id))
        )
