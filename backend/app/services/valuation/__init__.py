# backend/app/services/valuation/__init__.py
"""
Valuation package.

This package derives prices and totals for holdings and portfolios:
- Current price per holding (market quote or fixed-rate accrual)
- Holding totals (value, invested, gain, gain %)
- Portfolio aggregates (sum over ACTIVE holdings)

Usage:
    from app.services.valuation import (
        PricingStrategy,
        HoldingValuator,
        PortfolioAggregator,
    )

    price = PricingStrategy().price(holding, as_of=now, quotes=quotes)
    HoldingValuator().apply(holding, price.price)
    PortfolioAggregator().recompute(db, holding.portfolio_id)

Architecture:
    valuation/
    ├── __init__.py      # This file - package exports
    ├── types.py         # Internal data classes
    ├── calculators.py   # Pricing, accrual and holding valuation
    └── aggregator.py    # Portfolio recompute

Data Flow:
    Holding + Quote/Accrual → PricingStrategy → PriceResult
    PriceResult → HoldingValuator → HoldingValuation
    ACTIVE holdings → PortfolioAggregator → PortfolioTotals
"""

from app.services.valuation.aggregator import PortfolioAggregator
from app.services.valuation.calculators import (
    AccrualCalculator,
    HoldingValuator,
    PricingStrategy,
    gain_percentage,
    is_fixed_rate,
    quantize_money,
    quantize_percent,
)
from app.services.valuation.types import (
    HoldingValuation,
    PortfolioTotals,
    PriceResult,
    PricingRegime,
)

__all__ = [
    # Calculators
    "AccrualCalculator",
    "PricingStrategy",
    "HoldingValuator",
    "PortfolioAggregator",
    # Helpers
    "gain_percentage",
    "is_fixed_rate",
    "quantize_money",
    "quantize_percent",
    # Types
    "HoldingValuation",
    "PortfolioTotals",
    "PriceResult",
    "PricingRegime",
]
