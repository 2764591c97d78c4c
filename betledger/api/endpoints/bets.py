"""
Bet API Endpoints

Place bets against a bankroll and settle them. Settling posts the single
profit/loss ledger entry for the bet; re-submitting a won bet with a new
payout corrects that entry in place.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from betledger.api.dependencies import get_repository
from betledger.betting.models import Bet, BetStatus, Transaction
from betledger.core.errors import NotFoundError
from betledger.database.repository import BankrollRepository

router = APIRouter(prefix="/api/bets", tags=["Bets"])


# ============================================================================
# Pydantic Models
# ============================================================================

class PlaceBetRequest(BaseModel):
    """Request to place a bet. Defaults to the owner's active bankroll."""
    bankroll_id: Optional[str] = None
    stake: Decimal = Field(..., gt=0)
    potential_payout: Decimal = Field(..., gt=0)
    sport: str = Field("", max_length=50)
    event: str = Field("", max_length=200)
    bet_type: str = Field("", max_length=50)
    odds: str = Field("", max_length=20, description='Display odds, e.g. "+155" or "2.10"')
    created_at: Optional[datetime] = None


class SettleBetRequest(BaseModel):
    """Request to settle a bet"""
    status: BetStatus
    actual_payout: Optional[Decimal] = Field(None, ge=0)
    settled_at: Optional[datetime] = None


class SettlementResponse(BaseModel):
    bet: Bet
    transaction: Transaction


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("", response_model=Bet, status_code=201)
def place_bet(
    request: PlaceBetRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """
    Place a pending bet.

    ``stake_units`` is fixed now, at the current balance, and never
    recomputed.
    """
    bankroll_id = request.bankroll_id
    if bankroll_id is None:
        active = repo.get_active_bankroll(owner_id)
        if active is None:
            raise NotFoundError("active bankroll", owner_id)
        bankroll_id = active.id

    return repo.place_bet(
        bankroll_id,
        stake=request.stake,
        potential_payout=request.potential_payout,
        owner_id=owner_id,
        sport=request.sport,
        event=request.event,
        bet_type=request.bet_type,
        odds=request.odds,
        created_at=request.created_at
    )


@router.get("", response_model=List[Bet])
def list_bets(
    bankroll_id: str,
    status: Optional[BetStatus] = None,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """Bets of a bankroll, oldest first, optionally filtered by status."""
    return repo.list_bets(bankroll_id, owner_id, status=status)


@router.get("/{bet_id}", response_model=Bet)
def get_bet(
    bet_id: str,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    return repo.get_bet(bet_id, owner_id)


@router.put("/{bet_id}/settle", response_model=SettlementResponse)
def settle_bet(
    bet_id: str,
    request: SettleBetRequest,
    owner_id: str = "default_user",
    repo: BankrollRepository = Depends(get_repository)
):
    """
    Settle a pending bet as won or lost.

    Returns 409 when the bet is already settled with the other outcome or
    when moving it back to pending.
    """
    bet, entry = repo.settle_bet(
        bet_id,
        request.status,
        actual_payout=request.actual_payout,
        owner_id=owner_id,
        settled_at=request.settled_at
    )
    return SettlementResponse(bet=bet, transaction=entry)
