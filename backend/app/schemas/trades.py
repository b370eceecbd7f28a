# backend/app/schemas/trades.py
"""
Pydantic schemas for buy and sell requests.

Amounts stay Decimal end-to-end and are serialized as JSON strings, so
no precision is lost on the way out.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models import HoldingStatus
from app.schemas.portfolios import PortfolioTotalsResponse


# =============================================================================
# REQUESTS
# =============================================================================

class BuyRequest(BaseModel):
    instrument_id: int = Field(..., gt=0, description="Marketplace instrument to buy")
    quantity: Decimal = Field(
        ...,
        gt=0,
        max_digits=28,
        decimal_places=10,
        examples=["10", "0.5"],
        description="Units to buy"
    )


class SellRequest(BaseModel):
    quantity: Decimal = Field(
        ...,
        gt=0,
        max_digits=28,
        decimal_places=10,
        examples=["4"],
        description="Units to sell (at most the holding's quantity)"
    )


# =============================================================================
# RESPONSES
# =============================================================================

class BuyPreviewResponse(BaseModel):
    """Cost breakdown: total_debit = cost + fee."""

    model_config = ConfigDict(from_attributes=True)

    portfolio_id: int
    instrument_id: int
    quantity: Decimal
    unit_price: Decimal
    cost: Decimal
    fee: Decimal
    total_debit: Decimal


class BuyResponse(BaseModel):
    holding_id: int
    transaction_id: int
    trade: BuyPreviewResponse
    portfolio: PortfolioTotalsResponse


class SellPreviewResponse(BaseModel):
    """
    Proceeds breakdown: net_proceeds = proceeds - fee,
    realized_gain = net_proceeds - cost_basis.
    """

    model_config = ConfigDict(from_attributes=True)

    holding_id: int
    portfolio_id: int
    quantity: Decimal
    unit_price: Decimal
    proceeds: Decimal
    fee: Decimal
    net_proceeds: Decimal
    cost_basis: Decimal
    realized_gain: Decimal
    realized_gain_percentage: Decimal
    remaining_quantity: Decimal
    closes_holding: bool


class SellResponse(BaseModel):
    transaction_id: int
    holding_status: HoldingStatus
    trade: SellPreviewResponse
    portfolio: PortfolioTotalsResponse
