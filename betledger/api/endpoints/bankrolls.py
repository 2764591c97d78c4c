"""
Bankroll API Endpoints

Bankroll management, the transaction ledger, goals, and every read-side
calculation: balance, drawdown, analytics, loss limits, unit and Kelly
sizing.
"""

from datetime import datetime, tzinfo
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, model_validator

from betledger.api.dependencies import get_repository, get_timezone
from betledger.betting.balance import BalancePoint, LedgerTotals, balance_history, ledger_totals
from betledger.betting.drawdown import DrawdownStats, analyze_drawdown
from betledger.betting.goals import GoalEvaluation
from betledger.betting.models import Bankroll, BankrollGoal, Transaction, TransactionType, UnitMode
from betledger.betting.report import BankrollReport, build_bankroll_report
from betledger.core.datetime_utils import utc_now
from betledger.core.errors import NotFoundError
from betledger.database.repository import BankrollRepository
from betledger.strategies.kelly import KellySizing, kelly, parse_odds
from betledger.strategies.risk import (
    BetSizeValidation,
    LossLimitCheck,
    check_daily_loss_limit,
    check_weekly_loss_limit,
    validate_bet_size,
)
from betledger.strategies.units import (
    DivisionUndefined,
    MaxBetSize,
    max_bet_size,
    stake_to_units,
    unit_size,
    units_to_stake,
)

router = APIRouter(prefix="/api/bankrolls", tags=["Bankrolls"])


# ============================================================================
# Pydantic Models
# ============================================================================

class CreateBankrollRequest(BaseModel):
    """Request to create a bankroll"""
    name: str = Field("", max_length=100)
    currency: str = Field("USD", min_length=3, max_length=3)
    starting_balance: Decimal = Field(..., ge=0)
    unit_mode: UnitMode
    unit_value: Decimal = Field(..., gt=0)
    max_bet_pct: Optional[Decimal] = Field(None, gt=0, le=1)
    daily_loss_limit_pct: Optional[Decimal] = Field(None, gt=0, le=1)
    weekly_loss_limit_pct: Optional[Decimal] = Field(None, gt=0, le=1)
    kelly_fraction: Optional[Decimal] = Field(None, gt=0, le=1)


class UpdateBankrollRequest(BaseModel):
    """
    Partial update. Immutable fields are accepted so that changing them
    is reported as a conflict rather than silently ignored.
    """
    name: Optional[str] = Field(None, max_length=100)
    unit_value: Optional[Decimal] = Field(None, gt=0)
    max_bet_pct: Optional[Decimal] = Field(None, gt=0, le=1)
    daily_loss_limit_pct: Optional[Decimal] = Field(None, gt=0, le=1)
    weekly_loss_limit_pct: Optional[Decimal] = Field(None, gt=0, le=1)
    kelly_fraction: Optional[Decimal] = Field(None, gt=0, le=1)
    starting_balance: Optional[Decimal] = None
    currency: Optional[str] = None
    unit_mode: Optional[UnitMode] = None


class TransactionRequest(BaseModel):
    """Request to record a ledger entry"""
    type: TransactionType
    amount: Decimal = Field(..., description="Positive, or signed for adjustments")
    reason: Optional[str] = Field(None, max_length=500)
    created_at: Optional[datetime] = None


class TransferRequest(BaseModel):
    from_bankroll_id: str
    to_bankroll_id: str
    amount: Decimal = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class TransferResponse(BaseModel):
    transfer_out: Transaction
    transfer_in: Transaction


class BalanceResponse(BaseModel):
    bankroll_id: str
    currency: str
    current_balance: Decimal
    unit_size: Optional[Decimal]
    totals: LedgerTotals


class LossLimitsResponse(BaseModel):
    daily: LossLimitCheck
    weekly: LossLimitCheck


class KellyRequest(BaseModel):
    """Kelly sizing request. Give either decimal_odds or odds text."""
    win_probability: Decimal = Field(..., description="Estimated win probability (0, 1)")
    decimal_odds: Optional[Decimal] = None
    odds: Optional[str] = Field(None, description='American or decimal, e.g. "+155", "2.10"')

    @model_validator(mode="after")
    def require_odds(self):
        if self.decimal_odds is None and not self.odds:
            raise ValueError("decimal_odds or odds is required")
        return self


class StakeRequest(BaseModel):
    stake: Decimal = Field(..., gt=0)


class UnitsRequest(BaseModel):
    """Convert a stake to units or units to a stake."""
    stake: Optional[Decimal] = Field(None, ge=0)
    units: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def exactly_one(self):
        if (self.stake is None) == (self.units is None):
            raise ValueError("provide exactly one of stake or units")
        return self


class UnitsResponse(BaseModel):
    """Conversion result. ``undefined_reason`` is set when units are N/A."""
    stake: Optional[Decimal]
    units: Optional[Decimal]
    current_balance: Decimal
    undefined_reason: Optional[str] = None


class GoalRequest(BaseModel):
    target_amount: Optional[Decimal] = Field(None, gt=0)
    target_profit: Optional[Decimal] = Field(None, gt=0)
    target_date: Optional[datetime] = None


# ============================================================================
# Bankroll Endpoints
# ============================================================================

@router.post("", response_model=Bankroll, status_code=201)
def create_bankroll(
    request: CreateBankrollRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """
    Create a bankroll.

    The owner's first bankroll is created active.
    """
    return repo.create_bankroll(owner_id=owner_id, **request.model_dump())


@router.get("", response_model=List[Bankroll])
def list_bankrolls(
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    return repo.list_bankrolls(owner_id)


@router.get("/active", response_model=Optional[Bankroll])
def get_active_bankroll(
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """The owner's active bankroll, or null if none is active."""
    return repo.get_active_bankroll(owner_id)


@router.post("/transfers", response_model=TransferResponse, status_code=201)
def transfer(
    request: TransferRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Move money between two of the owner's bankrolls."""
    out_tx, in_tx = repo.transfer(
        request.from_bankroll_id,
        request.to_bankroll_id,
        request.amount,
        owner_id=owner_id,
        reason=request.reason
    )
    return TransferResponse(transfer_out=out_tx, transfer_in=in_tx)


@router.get("/{bankroll_id}", response_model=Bankroll)
def get_bankroll(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    return repo.get_bankroll(bankroll_id, owner_id)


@router.patch("/{bankroll_id}", response_model=Bankroll)
def update_bankroll(
    bankroll_id: str,
    request: UpdateBankrollRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """
    Update bankroll settings.

    Returns 409 if starting_balance, currency or unit_mode would change.
    """
    return repo.update_bankroll(bankroll_id, owner_id, **request.model_dump(exclude_unset=True))


@router.delete("/{bankroll_id}", status_code=204)
def delete_bankroll(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Delete a bankroll. Returns 409 once any of its bets has settled."""
    repo.delete_bankroll(bankroll_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{bankroll_id}/activate", response_model=Bankroll)
def activate_bankroll(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Make this the owner's only active bankroll."""
    return repo.activate(bankroll_id, owner_id)


@router.post("/{bankroll_id}/deactivate", response_model=Bankroll)
def deactivate_bankroll(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    return repo.deactivate(bankroll_id, owner_id)


# ============================================================================
# Ledger Endpoints
# ============================================================================

@router.get("/{bankroll_id}/transactions", response_model=List[Transaction])
def list_transactions(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Ledger entries, oldest first."""
    return repo.list_transactions(bankroll_id, owner_id)


@router.post("/{bankroll_id}/transactions", response_model=Transaction, status_code=201)
def record_transaction(
    bankroll_id: str,
    request: TransactionRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """
    Record a deposit, withdrawal, adjustment or transfer entry.

    Profit and loss entries come only from settling bets.
    """
    return repo.record_transaction(
        bankroll_id,
        request.type,
        request.amount,
        reason=request.reason,
        owner_id=owner_id,
        created_at=request.created_at
    )


@router.get("/{bankroll_id}/balance", response_model=BalanceResponse)
def get_balance(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    balance = snapshot.current_balance
    size = unit_size(snapshot.bankroll, balance)
    return BalanceResponse(
        bankroll_id=bankroll_id,
        currency=snapshot.bankroll.currency,
        current_balance=balance,
        unit_size=None if isinstance(size, DivisionUndefined) else size,
        totals=ledger_totals(snapshot.transactions)
    )


@router.get("/{bankroll_id}/history", response_model=List[BalancePoint])
def get_balance_history(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Running balance after each ledger entry."""
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    return balance_history(snapshot.bankroll, snapshot.transactions)


@router.get("/{bankroll_id}/drawdown", response_model=DrawdownStats)
def get_drawdown(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    history = balance_history(snapshot.bankroll, snapshot.transactions)
    return analyze_drawdown(history, starting_balance=snapshot.bankroll.starting_balance)


# ============================================================================
# Analytics & Risk Endpoints
# ============================================================================

@router.get("/{bankroll_id}/analytics", response_model=BankrollReport)
def get_analytics(
    bankroll_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    category: str = Query("bet_type", pattern="^(bet_type|sport)$"),
    owner_id: str = "default_user",
    tz: tzinfo = Depends(get_timezone),
    repo: BankrollRepository = Depends(get_repository)
):
    """
    Full analytics report.

    Balance, history and drawdown cover the whole ledger; totals and bet
    analytics honour the optional date range.
    """
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    return build_bankroll_report(
        snapshot.bankroll,
        snapshot.transactions,
        snapshot.bets,
        snapshot.goals,
        now=utc_now(),
        tz=tz,
        date_from=date_from,
        date_to=date_to,
        category=category
    )


@router.get("/{bankroll_id}/loss-limits", response_model=LossLimitsResponse)
def get_loss_limits(
    bankroll_id: str,
    owner_id: str = "default_user",
    tz: tzinfo = Depends(get_timezone),
    repo: BankrollRepository = Depends(get_repository)
):
    """Realized losses today and this week against the configured limits."""
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    now = utc_now()
    return LossLimitsResponse(
        daily=check_daily_loss_limit(snapshot.bankroll, snapshot.transactions, now, tz),
        weekly=check_weekly_loss_limit(snapshot.bankroll, snapshot.transactions, now, tz)
    )


@router.get("/{bankroll_id}/max-bet", response_model=MaxBetSize)
def get_max_bet(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    return max_bet_size(snapshot.bankroll, snapshot.current_balance)


@router.post("/{bankroll_id}/validate-bet", response_model=BetSizeValidation)
def validate_bet(
    bankroll_id: str,
    request: StakeRequest,
    owner_id: str = "default_user",
    tz: tzinfo = Depends(get_timezone),
    repo: BankrollRepository = Depends(get_repository)
):
    """Check a proposed stake against balance, max bet size and loss limits."""
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    return validate_bet_size(
        snapshot.bankroll, snapshot.transactions, request.stake, utc_now(), tz
    )


@router.post("/{bankroll_id}/kelly", response_model=KellySizing)
def get_kelly_sizing(
    bankroll_id: str,
    request: KellyRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Full and fractional Kelly stake at the current balance."""
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    odds = request.decimal_odds if request.decimal_odds is not None else parse_odds(request.odds)
    return kelly(request.win_probability, odds, snapshot.bankroll, snapshot.current_balance)


@router.post("/{bankroll_id}/units", response_model=UnitsResponse)
def convert_units(
    bankroll_id: str,
    request: UnitsRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Stake to units or units to stake at the current balance."""
    snapshot = repo.load_snapshot(bankroll_id, owner_id)
    balance = snapshot.current_balance

    if request.stake is not None:
        result = stake_to_units(request.stake, snapshot.bankroll, balance)
        stake, units = request.stake, result
    else:
        result = units_to_stake(request.units, snapshot.bankroll, balance)
        stake, units = result, request.units

    if isinstance(result, DivisionUndefined):
        return UnitsResponse(
            stake=request.stake,
            units=request.units,
            current_balance=balance,
            undefined_reason=result.reason
        )
    return UnitsResponse(stake=stake, units=units, current_balance=balance)


# ============================================================================
# Goal Endpoints
# ============================================================================

def _check_goal(repo: BankrollRepository, bankroll_id: str, goal_id: str, owner_id: str) -> None:
    if repo.get_goal(goal_id, owner_id).bankroll_id != bankroll_id:
        raise NotFoundError("goal", goal_id)


@router.post("/{bankroll_id}/goals", response_model=BankrollGoal, status_code=201)
def create_goal(
    bankroll_id: str,
    request: GoalRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    return repo.create_goal(bankroll_id, owner_id=owner_id, **request.model_dump())


@router.get("/{bankroll_id}/goals", response_model=List[BankrollGoal])
def list_goals(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    return repo.list_goals(bankroll_id, owner_id)


@router.post("/{bankroll_id}/goals/evaluate", response_model=List[GoalEvaluation])
def evaluate_goals(
    bankroll_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Recompute goal progress and persist met/missed transitions."""
    return repo.evaluate_goals(bankroll_id, owner_id)


@router.patch("/{bankroll_id}/goals/{goal_id}", response_model=BankrollGoal)
def update_goal(
    bankroll_id: str,
    goal_id: str,
    request: GoalRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Edit an active goal. Returns 409 once the goal is met or missed."""
    _check_goal(repo, bankroll_id, goal_id, owner_id)
    return repo.update_goal(goal_id, owner_id, **request.model_dump(exclude_unset=True))


@router.delete("/{bankroll_id}/goals/{goal_id}", status_code=204)
def delete_goal(
    bankroll_id: str,
    goal_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    _check_goal(repo, bankroll_id, goal_id, owner_id)
    repo.delete_goal(goal_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
