# backend/app/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

Organized by domain:
- errors: Error response formats
- holdings: Holding reads and admin price updates
- portfolios: Portfolio totals and summary
- revaluation: Revaluation run summaries
- trades: Buy/sell requests, previews and results

Usage:
    from app.schemas import BuyRequest, BuyResponse
    from app.schemas import HoldingResponse, PortfolioSummaryResponse
"""

from app.schemas.errors import ErrorDetail, ValidationErrorDetail
from app.schemas.holdings import HoldingPriceUpdate, HoldingResponse
from app.schemas.portfolios import PortfolioSummaryResponse, PortfolioTotalsResponse
from app.schemas.revaluation import RevaluationErrorResponse, RevaluationRunResponse
from app.schemas.trades import (
    BuyPreviewResponse,
    BuyRequest,
    BuyResponse,
    SellPreviewResponse,
    SellRequest,
    SellResponse,
)

__all__ = [
    # Errors
    "ErrorDetail",
    "ValidationErrorDetail",
    # Holdings
    "HoldingResponse",
    "HoldingPriceUpdate",
    # Portfolios
    "PortfolioTotalsResponse",
    "PortfolioSummaryResponse",
    # Revaluation
    "RevaluationErrorResponse",
    "RevaluationRunResponse",
    # Trades
    "BuyRequest",
    "BuyPreviewResponse",
    "BuyResponse",
    "SellRequest",
    "SellPreviewResponse",
    "SellResponse",
]
