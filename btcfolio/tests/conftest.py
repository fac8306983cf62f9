"""
Shared pytest fixtures for the BTCfolio test suite.

Calculation tests get a fixed `now` and a small transaction factory.
API tests use the FastAPI TestClient with an isolated temporary database so
tests never touch the real database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from btcfolio.database import Base, get_db
from btcfolio.main import app
from btcfolio.schemas.transaction import parse_transaction

# Import all models so Base.metadata knows about them
from btcfolio.models import Transaction, SpotPrice, MonthlyClose, AllTimeHigh  # noqa: F401

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class TxFactory:
    """
    Builds validated transactions. Dates are given as days before `now`
    (or as an explicit datetime via `at=`).
    """

    def __init__(self, now: datetime):
        self.now = now
        self._next_id = 1

    def _date(self, days_ago, at):
        return at if at is not None else self.now - timedelta(days=days_ago)

    def _make(self, data):
        data.setdefault("id", self._next_id)
        self._next_id += 1
        return parse_transaction(data)

    def buy(self, btc, usd, days_ago=0, at=None, price=None, fee=None, fee_currency=None):
        return self._make({
            "type": "buy", "date": self._date(days_ago, at),
            "received_amount": btc, "sent_amount": usd,
            "price": price if price is not None else usd / btc,
            "fee_amount": fee, "fee_currency": fee_currency,
        })

    def sell(self, btc, usd, days_ago=0, at=None, price=None, fee=None, fee_currency=None):
        return self._make({
            "type": "sell", "date": self._date(days_ago, at),
            "sent_amount": btc, "received_amount": usd,
            "price": price if price is not None else usd / btc,
            "fee_amount": fee, "fee_currency": fee_currency,
        })

    def deposit(self, btc, days_ago=0, at=None, price=None, fee=None, fee_currency=None):
        return self._make({
            "type": "deposit", "date": self._date(days_ago, at), "received_amount": btc,
            "price": price, "fee_amount": fee, "fee_currency": fee_currency,
        })

    def withdrawal(self, btc, days_ago=0, at=None, price=None, fee=None, fee_currency=None):
        return self._make({
            "type": "withdrawal", "date": self._date(days_ago, at), "sent_amount": btc,
            "price": price, "fee_amount": fee, "fee_currency": fee_currency,
        })

    def interest(self, btc, days_ago=0, at=None, price=None):
        return self._make({
            "type": "interest", "date": self._date(days_ago, at), "received_amount": btc, "price": price,
        })


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def txs(now):
    return TxFactory(now)


@pytest.fixture
def test_engine(tmp_path):
    """Create a temporary SQLite database for one test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_db(test_engine):
    """Direct SQLAlchemy session for tests that need DB access."""
    TestSessionLocal = sessionmaker(bind=test_engine)
    db = TestSessionLocal()
    yield db
    db.close()


@pytest.fixture
def client(test_engine):
    """TestClient using an isolated test database."""
    TestSessionLocal = sessionmaker(bind=test_engine)

    def override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
