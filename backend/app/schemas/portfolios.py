# backend/app/schemas/portfolios.py
"""
Pydantic schemas for portfolio reads.

Portfolio CRUD belongs to the back office; the valuation API only
exposes the derived totals and the holdings behind them.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.holdings import HoldingResponse


class PortfolioTotalsResponse(BaseModel):
    """Aggregate over the portfolio's ACTIVE holdings."""

    model_config = ConfigDict(from_attributes=True)

    total_value: Decimal
    total_invested: Decimal
    total_gain: Decimal
    gain_percentage: Decimal


class PortfolioSummaryResponse(PortfolioTotalsResponse):
    id: int
    name: str
    currency: str
    updated_at: datetime | None = None
    active_holding_count: int = Field(..., description="Holdings counted in the totals")
    holdings: list[HoldingResponse] = Field(default_factory=list)
