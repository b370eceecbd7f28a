# backend/app/routers/admin.py
"""
Administrator endpoints.

- PUT /admin/holdings/{id}/price - Manual price correction
- POST /admin/revaluation/run - Trigger a revaluation run now
- GET /admin/revaluation/runs - Recent revaluation runs

All endpoints require an administrator bearer token.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_admin_user, get_holding_service, get_revaluation_service
from app.models import RevaluationTrigger, User
from app.schemas.holdings import HoldingPriceUpdate, HoldingResponse
from app.schemas.revaluation import RevaluationErrorResponse, RevaluationRunResponse
from app.services.holding_service import HoldingService
from app.services.revaluation import RevaluationService, RunResult

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
)


def _map_run_result(result: RunResult) -> RevaluationRunResponse:
    """Map internal RunResult to Pydantic schema."""
    return RevaluationRunResponse(
        run_id=result.run_id,
        status=result.status,
        trigger=result.trigger,
        as_of=result.as_of,
        started_at=result.started_at,
        completed_at=result.completed_at,
        correlation_id=result.correlation_id,
        market_prices_updated=result.market_prices_updated,
        accruals_updated=result.accruals_updated,
        portfolios_updated=result.portfolios_updated,
        instrument_prices_updated=result.instrument_prices_updated,
        success=result.success,
        errors=[RevaluationErrorResponse(**e.to_dict()) for e in result.errors],
    )


def _map_run_row(run) -> RevaluationRunResponse:
    """Map a stored RevaluationRun row to Pydantic schema."""
    errors = run.errors or []
    return RevaluationRunResponse(
        run_id=run.id,
        status=run.status,
        trigger=run.trigger,
        as_of=run.as_of,
        started_at=run.started_at,
        completed_at=run.completed_at,
        correlation_id=run.correlation_id,
        market_prices_updated=run.market_prices_updated,
        accruals_updated=run.accruals_updated,
        portfolios_updated=run.portfolios_updated,
        instrument_prices_updated=run.instrument_prices_updated,
        success=not errors,
        errors=[RevaluationErrorResponse(**e) for e in errors],
    )


@router.put(
    "/holdings/{holding_id}/price",
    response_model=HoldingResponse,
    summary="Set a holding's price",
)
def update_holding_price(
        holding_id: int,
        request: HoldingPriceUpdate,
        db: Session = Depends(get_db),
        admin: User = Depends(get_admin_user),
        service: HoldingService = Depends(get_holding_service),
) -> HoldingResponse:
    """
    Overwrite a holding's current price and re-derive its totals and
    its portfolio's totals.
    """
    logger.info(f"Admin {admin.id} updating price of holding {holding_id}")
    holding = service.update_holding_price(db, holding_id=holding_id, price=request.price)
    return HoldingResponse.model_validate(holding)


@router.post(
    "/revaluation/run",
    response_model=RevaluationRunResponse,
    summary="Run the revaluation job now",
)
def run_revaluation(
        db: Session = Depends(get_db),
        admin: User = Depends(get_admin_user),
        service: RevaluationService = Depends(get_revaluation_service),
) -> RevaluationRunResponse:
    """
    Run the daily revaluation synchronously.

    Returns status **skipped** if a run is already in progress.
    """
    logger.info(f"Admin {admin.id} triggered a revaluation run")
    result = service.run_daily_revaluation(db, trigger=RevaluationTrigger.MANUAL)
    return _map_run_result(result)


@router.get(
    "/revaluation/runs",
    response_model=list[RevaluationRunResponse],
    summary="List recent revaluation runs",
)
def list_revaluation_runs(
        limit: int = Query(default=20, ge=1, le=100),
        db: Session = Depends(get_db),
        admin: User = Depends(get_admin_user),
        service: RevaluationService = Depends(get_revaluation_service),
) -> list[RevaluationRunResponse]:
    return [_map_run_row(run) for run in service.list_runs(db, limit=limit)]
