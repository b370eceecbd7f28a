# backend/app/services/valuation/types.py
"""
Internal data types for the valuation engine.

These dataclasses are used internally by the calculators, the trade
executor and the revaluation job. They are NOT Pydantic schemas - those
live in app/schemas/ for API serialization.

Design Principles:
- Immutable value objects (frozen=True)
- Decimal for ALL financial values (never float)
- Values are already quantized to storage scale when constructed

Type Hierarchy:
    PricingRegime     - Which rule produced a holding's price
    PriceResult       - Output of the pricing strategy
    HoldingValuation  - Derived totals for one holding
    PortfolioTotals   - Derived aggregate for one portfolio
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal


class PricingRegime(str, enum.Enum):
    MARKET = "market"      # price taken from an external quote
    ACCRUAL = "accrual"    # price accrued from the interest rate
    STORED = "stored"      # no rule applied, stored price kept


@dataclass(frozen=True)
class PriceResult:
    """
    Current price proposed by the pricing strategy.

    Attributes:
        price: The price to value the holding at
        regime: Which rule produced it
        days_held: Elapsed whole days (ACCRUAL only)
    """

    price: Decimal
    regime: PricingRegime
    days_held: int | None = None

    @property
    def is_fallback(self) -> bool:
        return self.regime == PricingRegime.STORED


@dataclass(frozen=True)
class HoldingValuation:
    """
    Derived totals for one holding.

    Invariants:
        total_value == quantity * current_price
        total_invested == quantity * purchase_price
        total_gain == total_value - total_invested
        gain_percentage == total_gain / total_invested * 100 (0 if invested is 0)
    """

    current_price: Decimal
    total_value: Decimal
    total_invested: Decimal
    total_gain: Decimal
    gain_percentage: Decimal


@dataclass(frozen=True)
class PortfolioTotals:
    """
    Aggregate of a portfolio's ACTIVE holdings.

    Attributes:
        holding_count: Number of ACTIVE holdings summed
    """

    total_value: Decimal
    total_invested: Decimal
    total_gain: Decimal
    gain_percentage: Decimal
    holding_count: int = 0
