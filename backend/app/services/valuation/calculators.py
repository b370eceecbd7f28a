# backend/app/services/valuation/calculators.py
"""
Pricing and valuation calculators.

Each calculator follows the Single Responsibility Principle:
- AccrualCalculator: Simple daily accrual for fixed-rate instruments
- PricingStrategy: Chooses the current price for a holding
- HoldingValuator: Derives value, invested, gain and gain % for a holding

Design Principles:
- Stateless (no instance state beyond injected collaborators)
- No database access; callers load and persist
- Uses Decimal for ALL financial calculations
- Results are quantized to the storage scale, so a value read back
  from the database compares equal to the value computed here

Usage:
    strategy = PricingStrategy()
    result = strategy.price(holding, as_of=now, quotes={"AAPL": quote})

    valuation = HoldingValuator().value(
        quantity=holding.quantity,
        purchase_price=holding.purchase_price,
        current_price=result.price,
    )
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal

from app.models import Holding, InstrumentType
from app.services.constants import (
    DAYS_PER_YEAR,
    FIXED_RATE_TYPES,
    MONEY_QUANTUM,
    ONE_HUNDRED,
    PERCENT_QUANTUM,
    ROUNDING,
    ZERO,
)
from app.services.market_data.base import Quote, normalize_symbol
from app.services.valuation.types import (
    HoldingValuation,
    PortfolioTotals,
    PriceResult,
    PricingRegime,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DECIMAL HELPERS
# =============================================================================

def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUNDING)


def quantize_percent(value: Decimal) -> Decimal:
    return value.quantize(PERCENT_QUANTUM, rounding=ROUNDING)


def gain_percentage(total_gain: Decimal, total_invested: Decimal) -> Decimal:
    """gain / invested * 100, or 0 when nothing is invested."""
    if total_invested == ZERO:
        return quantize_percent(ZERO)
    return quantize_percent(total_gain / total_invested * ONE_HUNDRED)


def is_fixed_rate(instrument_type: InstrumentType) -> bool:
    return instrument_type in FIXED_RATE_TYPES


def as_utc(moment: datetime | date) -> datetime:
    """
    Normalize to an aware UTC datetime.

    SQLite drops tzinfo on read, so naive values are taken to be UTC.
    A bare date means midnight UTC.
    """
    if not isinstance(moment, datetime):
        return datetime.combine(moment, time.min, tzinfo=timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# =============================================================================
# ACCRUAL CALCULATOR
# =============================================================================

class AccrualCalculator:
    """
    Simple (non-compounding) daily accrual.

    Formula:
        price = purchase_price * (1 + rate/100 * days_held/365)
        days_held = max(0, whole days between purchase and as_of)

    A purchase date in the future gives days_held = 0, so the price never
    accrues below the purchase price.
    """

    def days_held(self, purchase_date: datetime | date, as_of: datetime | date) -> int:
        elapsed = as_utc(as_of) - as_utc(purchase_date)
        # timedelta.days floors toward negative infinity
        return max(0, elapsed.days)

    def accrued_price(
            self,
            purchase_price: Decimal,
            interest_rate: Decimal,
            purchase_date: datetime | date,
            as_of: datetime | date,
    ) -> Decimal:
        days = self.days_held(purchase_date, as_of)
        growth = interest_rate / ONE_HUNDRED * Decimal(days) / Decimal(DAYS_PER_YEAR)
        return quantize_money(purchase_price * (Decimal(1) + growth))


# =============================================================================
# PRICING STRATEGY
# =============================================================================

class PricingStrategy:
    """
    Chooses the current price for a holding.

    Rules:
        Fixed-rate type with an interest rate -> accrued price
        Market-quoted type with a quote       -> quote price
        Anything else                         -> stored current price

    Quotes are passed in already fetched; the batch job fetches them once
    per run for all symbols.
    """

    def __init__(self, accrual: AccrualCalculator | None = None) -> None:
        self._accrual = accrual or AccrualCalculator()

    def price(
            self,
            holding: Holding,
            as_of: datetime,
            quotes: Mapping[str, Quote] | None = None,
    ) -> PriceResult:
        """
        Args:
            holding: Holding to price (not modified)
            as_of: Valuation moment
            quotes: Latest quotes keyed by upper-case symbol

        Returns:
            PriceResult with the proposed price and the rule that produced it
        """
        if is_fixed_rate(holding.instrument_type):
            if holding.interest_rate is None:
                return self._stored(holding)
            days = self._accrual.days_held(holding.purchase_date, as_of)
            price = self._accrual.accrued_price(
                purchase_price=holding.purchase_price,
                interest_rate=holding.interest_rate,
                purchase_date=holding.purchase_date,
                as_of=as_of,
            )
            return PriceResult(price=price, regime=PricingRegime.ACCRUAL, days_held=days)

        if holding.symbol and quotes:
            quote = quotes.get(normalize_symbol(holding.symbol))
            if quote is not None:
                return PriceResult(price=quantize_money(quote.price), regime=PricingRegime.MARKET)

        return self._stored(holding)

    @staticmethod
    def _stored(holding: Holding) -> PriceResult:
        return PriceResult(price=holding.current_price, regime=PricingRegime.STORED)


# =============================================================================
# HOLDING VALUATOR
# =============================================================================

class HoldingValuator:
    """
    Derives a holding's totals from quantity and prices.

    Pure: value() has no side effects. apply() writes a valuation onto an
    ORM row and is the only place holding totals are assigned.
    """

    def value(
            self,
            quantity: Decimal,
            purchase_price: Decimal,
            current_price: Decimal,
    ) -> HoldingValuation:
        total_value = quantize_money(quantity * current_price)
        total_invested = quantize_money(quantity * purchase_price)
        total_gain = total_value - total_invested
        return HoldingValuation(
            current_price=quantize_money(current_price),
            total_value=total_value,
            total_invested=total_invested,
            total_gain=total_gain,
            gain_percentage=gain_percentage(total_gain, total_invested),
        )

    def apply(self, holding: Holding, current_price: Decimal) -> HoldingValuation:
        valuation = self.value(holding.quantity, holding.purchase_price, current_price)
        holding.current_price = valuation.current_price
        holding.total_value = valuation.total_value
        holding.total_invested = valuation.total_invested
        holding.total_gain = valuation.total_gain
        holding.gain_percentage = valuation.gain_percentage
        return valuation

    @staticmethod
    def price_differs(holding: Holding, new_price: Decimal) -> bool:
        """Guard for revaluation: only changed prices are written."""
        if holding.current_price is None:
            return True
        return quantize_money(new_price) != quantize_money(holding.current_price)


def sum_totals(valuations: list[HoldingValuation]) -> PortfolioTotals:
    """Sum holding valuations into portfolio totals."""
    total_value = sum((v.total_value for v in valuations), ZERO)
    total_invested = sum((v.total_invested for v in valuations), ZERO)
    total_gain = sum((v.total_gain for v in valuations), ZERO)
    return PortfolioTotals(
        total_value=quantize_money(total_value),
        total_invested=quantize_money(total_invested),
        total_gain=quantize_money(total_gain),
        gain_percentage=gain_percentage(total_gain, total_invested),
        holding_count=len(valuations),
    )
