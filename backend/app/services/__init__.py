# backend/app/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Are easily testable via dependency injection

Usage:
    from app.services import TradeExecutor
    from app.services import HoldingService
    from app.services import RevaluationService
    from app.services import (
        InsufficientQuantityError,
        HoldingNotFoundError,
        MarketDataError,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Rounding, fixed-rate types, breaker limits
    ├── circuit_breaker.py           # Circuit breaker for the price feed
    ├── trade_service.py             # Buy/sell with atomic commit
    ├── holding_service.py           # Holding reads and admin price updates
    ├── auth/
    │   └── jwt_handler.py           # Bearer token verification
    ├── market_data/                 # Price sources
    │   ├── base.py                  # Abstract PriceSource + retry
    │   └── yahoo.py                 # Yahoo Finance implementation
    ├── valuation/                   # Pricing and totals
    │   ├── types.py                 # Valuation data types
    │   ├── calculators.py           # Accrual, pricing strategy, holding valuator
    │   └── aggregator.py            # Portfolio recompute
    └── revaluation/                 # Daily batch job
        ├── service.py               # RevaluationService
        └── scheduler.py             # APScheduler wiring
"""

# Exceptions
from app.services.exceptions import (
    # Base exceptions
    ServiceError,
    # Validation
    ValidationError,
    InsufficientQuantityError,
    InstrumentNotTradableError,
    HoldingClosedError,
    # Not found
    NotFoundError,
    PortfolioNotFoundError,
    HoldingNotFoundError,
    InstrumentNotFoundError,
    # Market data
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    QuoteUnavailableError,
    # Persistence
    PersistenceError,
)
# Holdings
from app.services.holding_service import HoldingService, PortfolioSummary
# Market data
from app.services.market_data import PriceSource, Quote, YahooQuoteProvider
# Revaluation
from app.services.revaluation import RevaluationScheduler, RevaluationService, RunResult
# Trading
from app.services.trade_service import (
    BuyPreview,
    BuyResult,
    SellPreview,
    SellResult,
    TradeExecutor,
)

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "TradeExecutor",
    "BuyPreview",
    "BuyResult",
    "SellPreview",
    "SellResult",
    "HoldingService",
    "PortfolioSummary",
    "RevaluationService",
    "RevaluationScheduler",
    "RunResult",
    # Price sources
    "PriceSource",
    "Quote",
    "YahooQuoteProvider",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "ServiceError",
    "ValidationError",
    "InsufficientQuantityError",
    "InstrumentNotTradableError",
    "HoldingClosedError",
    "NotFoundError",
    "PortfolioNotFoundError",
    "HoldingNotFoundError",
    "InstrumentNotFoundError",
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "QuoteUnavailableError",
    "PersistenceError",
]
