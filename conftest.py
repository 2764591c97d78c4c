"""
Pytest configuration and shared fixtures for betledger testing.

This file provides:
- Domain record factories (bankrolls, ledger entries, bets)
- SQLite in-memory database session and repository
- FastAPI test client wired to the in-memory database
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from betledger.betting.models import Bankroll, Bet, Transaction, UnitMode
from betledger.database.models import Base
from betledger.database.repository import BankrollRepository

T0 = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)  # a Monday


# ============================================================================
# Domain Factories
# ============================================================================

@pytest.fixture
def bankroll() -> Bankroll:
    """$1,000 bankroll with fixed $10 units."""
    return Bankroll(
        id="br-1",
        owner_id="user-1",
        starting_balance=Decimal("1000"),
        unit_mode=UnitMode.FIXED,
        unit_value=Decimal("10"),
        created_at=T0 - timedelta(days=30)
    )


@pytest.fixture
def make_transaction():
    """
    Factory for ledger entries on bankroll ``br-1``.

    Usage:
        def test_balance(make_transaction):
            tx = make_transaction("deposit", "100", minutes=5)
    """
    sequence = count(1)

    def _create(tx_type, amount, minutes: int = 0, at: datetime = None, **overrides):
        seq = next(sequence)
        fields = {
            "id": f"tx-{seq}",
            "bankroll_id": "br-1",
            "type": tx_type,
            "amount": Decimal(str(amount)),
            "created_at": at if at is not None else T0 + timedelta(minutes=minutes),
            "sequence": seq,
        }
        fields.update(overrides)
        return Transaction(**fields)

    return _create


@pytest.fixture
def make_bet():
    """
    Factory for bets on bankroll ``br-1``.

    Usage:
        def test_win_rate(make_bet):
            bet = make_bet("50", status="won", actual_payout="125")
    """
    sequence = count(1)

    def _create(stake, status="pending", actual_payout=None, potential_payout=None,
                minutes: int = 0, at: datetime = None, **overrides):
        seq = next(sequence)
        created = at if at is not None else T0 + timedelta(minutes=minutes)
        fields = {
            "id": f"bet-{seq:03d}",
            "bankroll_id": "br-1",
            "stake": Decimal(str(stake)),
            "potential_payout": Decimal(str(potential_payout or Decimal(str(stake)) * 2)),
            "status": status,
            "actual_payout": Decimal(str(actual_payout)) if actual_payout is not None else None,
            "created_at": created,
            "settled_at": created + timedelta(hours=3) if status != "pending" else None,
        }
        fields.update(overrides)
        return Bet(**fields)

    return _create


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """SQLite in-memory session with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = factory()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def repo(db_session) -> BankrollRepository:
    return BankrollRepository(db_session)


# ============================================================================
# FastAPI Test Client
# ============================================================================

@pytest.fixture
def api_client(db_session) -> Generator[TestClient, None, None]:
    """
    FastAPI test client backed by the in-memory database.

    Usage:
        def test_endpoint(api_client):
            response = api_client.get("/health")
            assert response.status_code == 200
    """
    from betledger.api.app import app, limiter
    from betledger.database.connection import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
