# backend/app/services/market_data/__init__.py
"""
Price source package.

This package contains:
- Abstract interface for price sources (base.py)
- Yahoo Finance implementation (yahoo.py)

Usage:
    from app.services.market_data import PriceSource, Quote, YahooQuoteProvider

Architecture:
    PriceSource (ABC)
    └── YahooQuoteProvider (concrete, circuit-breaker guarded)
"""

from app.services.market_data.base import (
    PriceSource,
    Quote,
    normalize_symbol,
)
from app.services.market_data.yahoo import YahooQuoteProvider

__all__ = [
    "PriceSource",
    "Quote",
    "normalize_symbol",
    "YahooQuoteProvider",
]
