# backend/app/routers/holdings.py
"""
Holding and portfolio read endpoints.

- GET /holdings/{id} - One holding with its cached valuation
- GET /portfolios/{id}/summary - Portfolio totals and holdings
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_holding_service
from app.models import User
from app.schemas.holdings import HoldingResponse
from app.schemas.portfolios import PortfolioSummaryResponse
from app.services.holding_service import HoldingService

router = APIRouter(tags=["Holdings"])


@router.get(
    "/holdings/{holding_id}",
    response_model=HoldingResponse,
    summary="Get a holding",
)
def get_holding(
        holding_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: HoldingService = Depends(get_holding_service),
) -> HoldingResponse:
    holding = service.get_holding(db, user_id=current_user.id, holding_id=holding_id)
    return HoldingResponse.model_validate(holding)


@router.get(
    "/portfolios/{portfolio_id}/summary",
    response_model=PortfolioSummaryResponse,
    summary="Get portfolio totals and holdings",
)
def get_portfolio_summary(
        portfolio_id: int,
        include_closed: bool = Query(
            default=False,
            description="Also list CLOSED holdings (never counted in totals)"
        ),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: HoldingService = Depends(get_holding_service),
) -> PortfolioSummaryResponse:
    """
    Get the portfolio's stored totals.

    Totals are the sum over ACTIVE holdings as of the last trade,
    price update or revaluation run.
    """
    summary = service.get_portfolio_summary(
        db,
        user_id=current_user.id,
        portfolio_id=portfolio_id,
        include_closed=include_closed,
    )
    portfolio = summary.portfolio
    return PortfolioSummaryResponse(
        id=portfolio.id,
        name=portfolio.name,
        currency=portfolio.currency,
        updated_at=portfolio.updated_at,
        total_value=portfolio.total_value,
        total_invested=portfolio.total_invested,
        total_gain=portfolio.total_gain,
        gain_percentage=portfolio.gain_percentage,
        active_holding_count=summary.active_holding_count,
        holdings=[HoldingResponse.model_validate(h) for h in summary.holdings],
    )
