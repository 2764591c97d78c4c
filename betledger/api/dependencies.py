"""
Shared FastAPI dependencies.
"""

from datetime import tzinfo
from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from betledger.core.config import settings
from betledger.core.datetime_utils import resolve_zone
from betledger.database.connection import get_db
from betledger.database.repository import BankrollRepository


def get_repository(db: Session = Depends(get_db)) -> BankrollRepository:
    return BankrollRepository(db)


def get_timezone(
    tz: Optional[str] = Query(None, description="IANA time zone, e.g. Australia/Sydney")
) -> tzinfo:
    """Owner's reference time zone, defaulting to settings.DEFAULT_TIMEZONE."""
    return resolve_zone(tz or settings.DEFAULT_TIMEZONE)
