"""SQLAlchemy persistence for bankrolls, their ledger, bets and goals."""

from .models import Base, Bankroll, BankrollGoal, BankrollTransaction, Bet
from .connection import create_db_engine, dispose_engine, get_db, get_engine, init_db
from .repository import BankrollRepository, LedgerSnapshot

__all__ = [
    "Base",
    "Bankroll",
    "BankrollGoal",
    "BankrollTransaction",
    "Bet",
    "create_db_engine",
    "dispose_engine",
    "get_db",
    "get_engine",
    "init_db",
    "BankrollRepository",
    "LedgerSnapshot",
]
