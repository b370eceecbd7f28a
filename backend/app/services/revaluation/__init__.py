# backend/app/services/revaluation/__init__.py
"""
Batch revaluation package.

Usage:
    from app.services.revaluation import RevaluationService, RevaluationScheduler

Architecture:
    revaluation/
    ├── __init__.py      # This file - package exports
    ├── service.py       # RevaluationService.run_daily_revaluation
    └── scheduler.py     # APScheduler cron wiring

Data Flow:
    PriceSource.get_quotes → PricingStrategy → HoldingValuator → PortfolioAggregator
"""

from app.services.revaluation.scheduler import RevaluationScheduler
from app.services.revaluation.service import (
    RevaluationError,
    RevaluationService,
    RunResult,
    is_run_in_progress,
)

__all__ = [
    "RevaluationService",
    "RevaluationScheduler",
    "RevaluationError",
    "RunResult",
    "is_run_in_progress",
]
