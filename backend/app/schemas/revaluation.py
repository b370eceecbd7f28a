# backend/app/schemas/revaluation.py
"""Pydantic schemas for revaluation runs."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import RevaluationStatus, RevaluationTrigger


class RevaluationErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    scope: str = Field(..., description="holding, instrument, portfolio, price_source or run")
    id: int | None = None
    message: str


class RevaluationRunResponse(BaseModel):
    """
    Summary of one revaluation run.

    success is true when no holding, instrument or portfolio failed.
    """

    model_config = ConfigDict(from_attributes=True)

    run_id: int | None = None
    status: RevaluationStatus
    trigger: RevaluationTrigger
    as_of: datetime
    started_at: datetime
    completed_at: datetime | None = None
    correlation_id: str | None = None

    market_prices_updated: int = 0
    accruals_updated: int = 0
    portfolios_updated: int = 0
    instrument_prices_updated: int = 0

    success: bool
    errors: list[RevaluationErrorResponse] = Field(default_factory=list)
