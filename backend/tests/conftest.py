# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock price sources
- Sample data factories
"""

import os

# Must be set before app.config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_NAME", "Test App")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import (
    Base,
    Holding,
    HoldingStatus,
    Instrument,
    InstrumentType,
    Portfolio,
    User,
)
from app.services.exceptions import ProviderUnavailableError
from app.services.market_data.base import PriceSource, Quote, normalize_symbol
from app.services.valuation.calculators import HoldingValuator


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Iterator[Session]:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# MOCK PRICE SOURCES
# =============================================================================

class MockPriceSource(PriceSource):
    """
    In-memory PriceSource for testing.

    Symbols without a configured price behave like unknown symbols.
    """

    def __init__(self, prices: dict[str, Decimal] | None = None):
        self._prices: dict[str, Decimal] = {}
        self._errors: dict[str, Exception] = {}
        self._as_of = datetime(2026, 1, 2, 21, 0, tzinfo=timezone.utc)
        self.requested: list[list[str]] = []
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    @property
    def name(self) -> str:
        return "mock"

    def set_price(self, symbol: str, price: Decimal) -> None:
        self._prices[normalize_symbol(symbol)] = Decimal(price)

    def set_error(self, symbol: str, error: Exception) -> None:
        self._errors[normalize_symbol(symbol)] = error

    def clear(self) -> None:
        self._prices.clear()
        self._errors.clear()

    def get_quote(self, symbol: str) -> Quote | None:
        symbol = normalize_symbol(symbol)
        if symbol in self._errors:
            raise self._errors[symbol]
        price = self._prices.get(symbol)
        if price is None:
            return None
        return Quote(symbol=symbol, price=price, as_of=self._as_of)

    def get_quotes(self, symbols) -> dict[str, Quote]:
        symbols = list(symbols)
        self.requested.append(sorted(symbols))
        return super().get_quotes(symbols)


class FailingPriceSource(PriceSource):
    """PriceSource whose feed is down for every call."""

    @property
    def name(self) -> str:
        return "failing"

    def get_quote(self, symbol: str) -> Quote | None:
        raise ProviderUnavailableError(provider=self.name, reason="connection refused")

    def get_quotes(self, symbols) -> dict[str, Quote]:
        raise ProviderUnavailableError(provider=self.name, reason="connection refused")


@pytest.fixture
def price_source() -> MockPriceSource:
    """Create a fresh mock price source for each test."""
    return MockPriceSource()


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

def create_user(
        db: Session,
        email: str = "client@example.com",
        is_admin: bool = False,
        is_active: bool = True,
) -> User:
    """Factory function for creating User entities in the database."""
    user = User(email=email, is_admin=is_admin, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_portfolio(
        db: Session,
        user: User,
        name: str = "Test Portfolio",
        currency: str = "EUR",
) -> Portfolio:
    """Factory function for creating Portfolio entities in the database."""
    portfolio = Portfolio(user_id=user.id, name=name, currency=currency)
    db.add(portfolio)
    db.commit()
    db.refresh(portfolio)
    return portfolio


def create_instrument(
        db: Session,
        name: str = "Apple Inc.",
        instrument_type: InstrumentType = InstrumentType.STOCK,
        symbol: str | None = "AAPL",
        current_price: Decimal = Decimal("100"),
        expected_return: Decimal | None = None,
        maturity_date=None,
        is_available: bool = True,
) -> Instrument:
    """Factory function for creating marketplace Instruments in the database."""
    instrument = Instrument(
        name=name,
        instrument_type=instrument_type,
        symbol=symbol,
        currency="EUR",
        current_price=current_price,
        expected_return=expected_return,
        maturity_date=maturity_date,
        is_available=is_available,
    )
    db.add(instrument)
    db.commit()
    db.refresh(instrument)
    return instrument


def create_holding(
        db: Session,
        portfolio: Portfolio,
        instrument_type: InstrumentType = InstrumentType.STOCK,
        name: str = "Apple Inc.",
        symbol: str | None = "AAPL",
        quantity: Decimal = Decimal("10"),
        purchase_price: Decimal = Decimal("50"),
        current_price: Decimal | None = None,
        interest_rate: Decimal | None = None,
        purchase_date: datetime | None = None,
        status: HoldingStatus = HoldingStatus.ACTIVE,
        instrument: Instrument | None = None,
) -> Holding:
    """
    Factory function for creating Holdings with consistent totals.

    current_price defaults to purchase_price.
    """
    holding = Holding(
        portfolio_id=portfolio.id,
        user_id=portfolio.user_id,
        instrument_id=instrument.id if instrument else None,
        instrument_type=instrument_type,
        name=name,
        symbol=symbol,
        quantity=quantity,
        purchase_price=purchase_price,
        purchase_date=purchase_date or datetime.now(timezone.utc) - timedelta(days=30),
        interest_rate=interest_rate,
        status=status,
    )
    HoldingValuator().apply(holding, current_price if current_price is not None else purchase_price)
    db.add(holding)
    db.commit()
    db.refresh(holding)
    return holding


# =============================================================================
# FIXTURE EXPORTS (for convenience imports in tests)
# =============================================================================

@pytest.fixture
def sample_user(db: Session) -> User:
    """Provide a sample User for tests."""
    return create_user(db)


@pytest.fixture
def admin_user(db: Session) -> User:
    return create_user(db, email="admin@example.com", is_admin=True)


@pytest.fixture
def sample_portfolio(db: Session, sample_user: User) -> Portfolio:
    """Provide a sample Portfolio for tests."""
    return create_portfolio(db, sample_user)


# =============================================================================
# API FIXTURES
# =============================================================================

def auth_headers(user: User, expires_in: timedelta = timedelta(minutes=15), **claims) -> dict[str, str]:
    """Bearer header for a token signed the way the auth service signs them."""
    from jose import jwt

    from app.config import settings

    payload = {
        "sub": str(user.id),
        "email": user.email,
        "type": "access",
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    payload.update(claims)
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db: Session, price_source: MockPriceSource):
    """TestClient bound to the test session and the mock price source."""
    from fastapi.testclient import TestClient

    from app.database import get_db
    from app.dependencies import clear_service_caches, get_revaluation_service
    from app.main import app
    from app.services.revaluation import RevaluationService

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_revaluation_service] = lambda: RevaluationService(
        price_source=price_source,
        missing_quote_policy="fallback",
    )

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
    clear_service_caches()
