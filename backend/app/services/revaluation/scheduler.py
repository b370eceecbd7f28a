# backend/app/services/revaluation/scheduler.py
"""
In-process scheduler for the daily revaluation job.

APScheduler BackgroundScheduler with a single cron job. The job runs on
the scheduler's worker thread and opens its own database session for
each firing. max_instances=1 and coalesce=True mean a slow run is never
overlapped by the next firing, and missed firings collapse into one.

Usage (from the FastAPI lifespan):
    scheduler = RevaluationScheduler(service_factory=get_revaluation_service)
    scheduler.start()
    ...
    scheduler.shutdown()
"""

import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.database import SessionLocal, session_scope
from app.models import RevaluationTrigger
from app.services.revaluation.service import RevaluationService, RunResult

logger = logging.getLogger(__name__)

JOB_ID = "daily_revaluation"


class RevaluationScheduler:
    """
    Owns the BackgroundScheduler and the revaluation cron job.

    Args:
        service_factory: Returns the RevaluationService to run
        schedule: 5-field crontab, defaults to REVALUATION_SCHEDULE
        timezone: Timezone for the crontab, defaults to REVALUATION_TIMEZONE
        session_factory: Session factory used for each firing
    """

    def __init__(
            self,
            service_factory: Callable[[], RevaluationService],
            schedule: str | None = None,
            timezone: str | None = None,
            session_factory: sessionmaker = SessionLocal,
    ) -> None:
        self._service_factory = service_factory
        self._schedule = schedule or settings.revaluation_schedule
        self._timezone = timezone or settings.revaluation_timezone
        self._session_factory = session_factory
        self._scheduler = BackgroundScheduler(timezone=self._timezone)

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if self._scheduler.running:
            logger.info("Revaluation scheduler is already running")
            return

        trigger = CronTrigger.from_crontab(self._schedule, timezone=self._timezone)
        self._scheduler.add_job(
            self.run_job,
            trigger,
            id=JOB_ID,
            name="Daily holding revaluation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            f"Revaluation scheduler started: schedule='{self._schedule}' "
            f"timezone={self._timezone}, next run at {self.next_run_time()}"
        )

    def shutdown(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("Revaluation scheduler stopped")

    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def run_job(self) -> RunResult | None:
        """
        One scheduled firing.

        Errors are logged here rather than raised into APScheduler, which
        would only log them again without the run context.
        """
        try:
            with session_scope(self._session_factory) as db:
                return self._service_factory().run_daily_revaluation(
                    db, trigger=RevaluationTrigger.SCHEDULED
                )
        except Exception:
            logger.exception("Scheduled revaluation crashed")
            return None
