# backend/app/schemas/holdings.py
"""Pydantic schemas for holdings."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models import HoldingStatus, InstrumentType


class HoldingResponse(BaseModel):
    """
    A holding with its cached valuation.

    total_value = quantity * current_price and
    total_gain = total_value - total_invested hold for every response.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    portfolio_id: int
    instrument_id: int | None
    instrument_type: InstrumentType
    name: str
    symbol: str | None

    quantity: Decimal
    purchase_price: Decimal
    purchase_date: datetime
    interest_rate: Decimal | None = None
    maturity_date: date | None = None

    current_price: Decimal
    total_value: Decimal
    total_invested: Decimal
    total_gain: Decimal
    gain_percentage: Decimal

    status: HoldingStatus
    updated_at: datetime | None = None


class HoldingPriceUpdate(BaseModel):
    """Administrator price correction."""

    price: Decimal = Field(
        ...,
        gt=0,
        max_digits=28,
        decimal_places=10,
        description="New current price for the holding"
    )
