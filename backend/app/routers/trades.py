# backend/app/routers/trades.py
"""
Buy and sell endpoints.

- POST /portfolios/{id}/buy/preview - Cost breakdown, nothing written
- POST /portfolios/{id}/buy - Buy an instrument into a new holding
- POST /holdings/{id}/sell/preview - Proceeds breakdown, nothing written
- POST /holdings/{id}/sell - Sell part or all of a holding

Every mutation commits the holding, the transaction record and the
portfolio totals together, or nothing at all.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_trade_executor
from app.models import User
from app.schemas.portfolios import PortfolioTotalsResponse
from app.schemas.trades import (
    BuyPreviewResponse,
    BuyRequest,
    BuyResponse,
    SellPreviewResponse,
    SellRequest,
    SellResponse,
)
from app.services.trade_service import TradeExecutor

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(tags=["Trades"])


# =============================================================================
# BUY
# =============================================================================

@router.post(
    "/portfolios/{portfolio_id}/buy/preview",
    response_model=BuyPreviewResponse,
    summary="Preview a buy",
)
def preview_buy(
        portfolio_id: int,
        request: BuyRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        executor: TradeExecutor = Depends(get_trade_executor),
) -> BuyPreviewResponse:
    """
    Price a buy at the instrument's current price.

    total_debit = quantity * unit_price + fee
    """
    preview = executor.preview_buy(
        db,
        user_id=current_user.id,
        portfolio_id=portfolio_id,
        instrument_id=request.instrument_id,
        quantity=request.quantity,
    )
    return BuyPreviewResponse.model_validate(preview)


@router.post(
    "/portfolios/{portfolio_id}/buy",
    response_model=BuyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy an instrument",
)
def buy(
        portfolio_id: int,
        request: BuyRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        executor: TradeExecutor = Depends(get_trade_executor),
) -> BuyResponse:
    """
    Buy an instrument into the portfolio.

    Raises **404** for an unknown or foreign portfolio or instrument,
    **400** if the instrument cannot be traded.
    """
    result = executor.buy(
        db,
        user_id=current_user.id,
        portfolio_id=portfolio_id,
        instrument_id=request.instrument_id,
        quantity=request.quantity,
    )
    return BuyResponse(
        holding_id=result.holding_id,
        transaction_id=result.transaction_id,
        trade=BuyPreviewResponse.model_validate(result.preview),
        portfolio=PortfolioTotalsResponse.model_validate(result.portfolio_totals),
    )


# =============================================================================
# SELL
# =============================================================================

@router.post(
    "/holdings/{holding_id}/sell/preview",
    response_model=SellPreviewResponse,
    summary="Preview a sell",
)
def preview_sell(
        holding_id: int,
        request: SellRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        executor: TradeExecutor = Depends(get_trade_executor),
) -> SellPreviewResponse:
    preview = executor.preview_sell(
        db,
        user_id=current_user.id,
        holding_id=holding_id,
        quantity=request.quantity,
    )
    return SellPreviewResponse.model_validate(preview)


@router.post(
    "/holdings/{holding_id}/sell",
    response_model=SellResponse,
    summary="Sell from a holding",
)
def sell(
        holding_id: int,
        request: SellRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        executor: TradeExecutor = Depends(get_trade_executor),
) -> SellResponse:
    """
    Sell part or all of a holding at its current price.

    Selling the full quantity closes the holding.

    Raises **400** when quantity exceeds the holding's quantity or the
    holding is already closed; nothing is changed in that case.
    """
    result = executor.sell(
        db,
        user_id=current_user.id,
        holding_id=holding_id,
        quantity=request.quantity,
    )
    return SellResponse(
        transaction_id=result.transaction_id,
        holding_status=result.holding_status,
        trade=SellPreviewResponse.model_validate(result.preview),
        portfolio=PortfolioTotalsResponse.model_validate(result.portfolio_totals),
    )
