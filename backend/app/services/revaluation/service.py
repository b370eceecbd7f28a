# backend/app/services/revaluation/service.py
"""
Daily revaluation of every active holding.

One run:
1. Loads ACTIVE market-quoted holdings with a symbol and the available
   marketplace instruments with a symbol, and bulk-fetches quotes for the
   distinct symbols (a feed failure means "no quotes", never a failed run)
2. Refreshes instrument catalogue prices from those quotes
3. Re-prices market-quoted holdings whose quote differs from the stored price
4. Re-prices fixed-rate holdings whose accrued price differs from the stored price
5. Re-aggregates every portfolio touched in steps 3-4

Failure isolation:
    Every holding, instrument and portfolio is committed on its own. A
    failure rolls back only that unit, is appended to the run's errors
    with the offending id, and the loop moves on. The run always
    completes; success means the error list is empty.

Idempotence:
    Prices are written only when they differ from the stored value, so a
    second run with no new quotes and no elapsed day writes nothing.

Only one run executes at a time per process. A trigger that arrives
while a run is in progress returns a SKIPPED result immediately.

Usage:
    from app.services.revaluation import RevaluationService

    service = RevaluationService(price_source=YahooQuoteProvider())
    result = service.run_daily_revaluation(db)
    if not result.success:
        for error in result.errors:
            print(error.scope, error.id, error.message)
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models import (
    Holding,
    HoldingStatus,
    Instrument,
    RevaluationRun,
    RevaluationStatus,
    RevaluationTrigger,
)
from app.services.circuit_breaker import CircuitBreakerOpen
from app.services.constants import FIXED_RATE_TYPES
from app.services.exceptions import MarketDataError, QuoteUnavailableError
from app.services.market_data.base import PriceSource, Quote, normalize_symbol
from app.services.valuation.aggregator import PortfolioAggregator
from app.services.valuation.calculators import (
    HoldingValuator,
    PricingStrategy,
    quantize_money,
)
from app.services.valuation.types import PricingRegime
from app.utils.context import correlation_scope

logger = logging.getLogger(__name__)

# One run per process; the scheduler and the admin endpoint share it
_run_lock = threading.Lock()


def is_run_in_progress() -> bool:
    return _run_lock.locked()


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class RevaluationError:
    """
    One failed unit of work inside a run.

    Attributes:
        scope: "holding", "instrument", "portfolio", "price_source" or "run"
        id: Id of the offending row (None for run-wide failures)
        message: Error description
    """

    scope: str
    id: int | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"scope": self.scope, "id": self.id, "message": self.message}


@dataclass
class RunResult:
    """Outcome of one revaluation run."""

    status: RevaluationStatus
    trigger: RevaluationTrigger
    as_of: datetime
    started_at: datetime
    completed_at: datetime | None = None
    run_id: int | None = None
    correlation_id: str | None = None

    quotes_fetched: int = 0
    market_prices_updated: int = 0
    accruals_updated: int = 0
    portfolios_updated: int = 0
    instrument_prices_updated: int = 0

    errors: list[RevaluationError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


# =============================================================================
# SERVICE
# =============================================================================

class RevaluationService:
    """
    Batch revaluation job.

    Args:
        price_source: Where market quotes come from
        strategy: Chooses each holding's price (accrual or quote)
        valuator: Derives holding totals from the chosen price
        aggregator: Re-derives portfolio totals
        missing_quote_policy: "fallback" keeps the stored price when a
            market-quoted holding has no quote; "fail" records an error
            for that holding
        clock: Returns the default as_of moment
    """

    def __init__(
            self,
            price_source: PriceSource,
            strategy: PricingStrategy | None = None,
            valuator: HoldingValuator | None = None,
            aggregator: PortfolioAggregator | None = None,
            missing_quote_policy: str | None = None,
            clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._price_source = price_source
        self._strategy = strategy or PricingStrategy()
        self._valuator = valuator or HoldingValuator()
        self._aggregator = aggregator or PortfolioAggregator()
        self._missing_quote_policy = missing_quote_policy or settings.missing_quote_policy
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def run_daily_revaluation(
            self,
            db: Session,
            as_of: datetime | None = None,
            trigger: RevaluationTrigger = RevaluationTrigger.SCHEDULED,
    ) -> RunResult:
        """
        Revalue every active holding and re-aggregate touched portfolios.

        Args:
            db: Database session (committed per unit of work)
            as_of: Valuation moment, defaults to now (UTC)
            trigger: What started the run, recorded on the run row

        Returns:
            RunResult with counters and per-unit errors
        """
        as_of = as_of or self._clock()

        if not _run_lock.acquire(blocking=False):
            logger.warning(f"Revaluation already in progress, {trigger.value} trigger skipped")
            return self._record_skipped(db, as_of, trigger)

        try:
            with correlation_scope("revaluation") as correlation_id:
                return self._run(db, as_of, trigger, correlation_id)
        finally:
            _run_lock.release()

    def list_runs(self, db: Session, limit: int = 20) -> list[RevaluationRun]:
        return list(db.scalars(
            select(RevaluationRun)
            .order_by(RevaluationRun.started_at.desc(), RevaluationRun.id.desc())
            .limit(limit)
        ).all())

    # =========================================================================
    # RUN
    # =========================================================================

    def _run(
            self,
            db: Session,
            as_of: datetime,
            trigger: RevaluationTrigger,
            correlation_id: str,
    ) -> RunResult:
        result = RunResult(
            status=RevaluationStatus.RUNNING,
            trigger=trigger,
            as_of=as_of,
            started_at=datetime.now(timezone.utc),
            correlation_id=correlation_id,
        )
        logger.info(f"Revaluation started: trigger={trigger.value}, as_of={as_of.isoformat()}")

        run_row = self._start_run_row(db, result)

        try:
            market_holdings = self._load_market_holdings(db)
            fixed_rate_holdings = self._load_fixed_rate_holdings(db)
            instruments = self._load_quoted_instruments(db)
        except Exception as e:
            db.rollback()
            logger.exception("Revaluation could not load its working set")
            result.errors.append(RevaluationError("run", None, str(e)))
            result.status = RevaluationStatus.FAILED
            return self._finish(db, run_row, result)

        # 1. Quotes
        symbols = {normalize_symbol(h.symbol) for h in market_holdings}
        symbols |= {normalize_symbol(i.symbol) for i in instruments}
        quotes = self._fetch_quotes(symbols, result)
        result.quotes_fetched = len(quotes)

        # 2. Instrument catalogue
        for instrument in instruments:
            self._refresh_instrument(db, instrument, quotes, result)

        # 3-4. Holdings
        touched: set[int] = set()
        for holding in market_holdings:
            if self._revalue_holding(db, holding, as_of, quotes, result):
                result.market_prices_updated += 1
                touched.add(holding.portfolio_id)

        for holding in fixed_rate_holdings:
            if self._revalue_holding(db, holding, as_of, quotes, result):
                result.accruals_updated += 1
                touched.add(holding.portfolio_id)

        # 5. Portfolios
        for portfolio_id in sorted(touched):
            try:
                self._aggregator.recompute(db, portfolio_id)
                db.commit()
                result.portfolios_updated += 1
            except Exception as e:
                db.rollback()
                logger.error(f"Revaluation failed for portfolio {portfolio_id}: {e}")
                result.errors.append(RevaluationError("portfolio", portfolio_id, str(e)))

        result.status = RevaluationStatus.PARTIAL if result.errors else RevaluationStatus.COMPLETED
        return self._finish(db, run_row, result)

    # =========================================================================
    # LOADING
    # =========================================================================

    @staticmethod
    def _load_market_holdings(db: Session) -> list[Holding]:
        return list(db.scalars(
            select(Holding)
            .where(
                Holding.status == HoldingStatus.ACTIVE,
                Holding.symbol.is_not(None),
                Holding.instrument_type.not_in(FIXED_RATE_TYPES),
            )
            .order_by(Holding.id)
        ).all())

    @staticmethod
    def _load_fixed_rate_holdings(db: Session) -> list[Holding]:
        return list(db.scalars(
            select(Holding)
            .where(
                Holding.status == HoldingStatus.ACTIVE,
                Holding.instrument_type.in_(FIXED_RATE_TYPES),
                Holding.interest_rate.is_not(None),
            )
            .order_by(Holding.id)
        ).all())

    @staticmethod
    def _load_quoted_instruments(db: Session) -> list[Instrument]:
        return list(db.scalars(
            select(Instrument)
            .where(
                Instrument.is_available.is_(True),
                Instrument.symbol.is_not(None),
                Instrument.instrument_type.not_in(FIXED_RATE_TYPES),
            )
            .order_by(Instrument.id)
        ).all())

    def _fetch_quotes(self, symbols: set[str], result: RunResult) -> dict[str, Quote]:
        """Bulk-fetch quotes; any feed failure degrades to "no quotes"."""
        if not symbols:
            return {}

        try:
            return self._price_source.get_quotes(sorted(symbols))
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Price source {self._price_source.name} unavailable, using stored prices: {e}")
            return {}
        except Exception as e:
            logger.exception(f"Price source {self._price_source.name} failed")
            result.errors.append(RevaluationError("price_source", None, str(e)))
            return {}

    # =========================================================================
    # UNITS OF WORK
    # =========================================================================

    def _refresh_instrument(
            self,
            db: Session,
            instrument: Instrument,
            quotes: dict[str, Quote],
            result: RunResult,
    ) -> None:
        instrument_id = instrument.id
        quote = quotes.get(normalize_symbol(instrument.symbol))
        if quote is None:
            return

        try:
            price = quantize_money(quote.price)
            if instrument.current_price is not None and quantize_money(instrument.current_price) == price:
                return
            instrument.current_price = price
            instrument.last_price_update = quote.as_of
            db.commit()
            result.instrument_prices_updated += 1
        except Exception as e:
            db.rollback()
            logger.error(f"Revaluation failed for instrument {instrument_id}: {e}")
            result.errors.append(RevaluationError("instrument", instrument_id, str(e)))

    def _revalue_holding(
            self,
            db: Session,
            holding: Holding,
            as_of: datetime,
            quotes: dict[str, Quote],
            result: RunResult,
    ) -> bool:
        """
        Re-price one holding and commit it if the price changed.

        Returns:
            True if the holding was written
        """
        holding_id = holding.id
        try:
            # A sell may have closed the row since the working set was loaded
            holding = db.scalar(
                select(Holding)
                .where(Holding.id == holding_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if holding is None or holding.status != HoldingStatus.ACTIVE:
                db.rollback()
                logger.debug(f"Holding {holding_id}: no longer active, skipped")
                return False

            priced = self._strategy.price(holding, as_of, quotes)

            if priced.regime == PricingRegime.STORED:
                if holding.symbol and self._missing_quote_policy == "fail":
                    raise QuoteUnavailableError(holding.symbol)
                logger.debug(f"Holding {holding_id}: no new price, keeping {holding.current_price}")
                db.rollback()
                return False

            if not self._valuator.price_differs(holding, priced.price):
                logger.debug(f"Holding {holding_id}: price unchanged at {priced.price}")
                db.rollback()
                return False

            old_price = holding.current_price
            self._valuator.apply(holding, priced.price)
            db.commit()
            logger.debug(
                f"Holding {holding_id} revalued ({priced.regime.value}): {old_price} -> {priced.price}"
            )
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Revaluation failed for holding {holding_id}: {e}")
            result.errors.append(RevaluationError("holding", holding_id, str(e)))
            return False

    # =========================================================================
    # RUN ROW
    # =========================================================================

    @staticmethod
    def _start_run_row(db: Session, result: RunResult) -> RevaluationRun | None:
        run_row = RevaluationRun(
            trigger=result.trigger,
            status=RevaluationStatus.RUNNING,
            correlation_id=result.correlation_id,
            as_of=result.as_of,
            started_at=result.started_at,
        )
        try:
            db.add(run_row)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Could not record revaluation run start: {e}")
            return None
        result.run_id = run_row.id
        return run_row

    def _finish(self, db: Session, run_row: RevaluationRun | None, result: RunResult) -> RunResult:
        result.completed_at = datetime.now(timezone.utc)

        if run_row is not None:
            try:
                run_row.status = result.status
                run_row.market_prices_updated = result.market_prices_updated
                run_row.accruals_updated = result.accruals_updated
                run_row.portfolios_updated = result.portfolios_updated
                run_row.instrument_prices_updated = result.instrument_prices_updated
                run_row.errors = [e.to_dict() for e in result.errors] or None
                run_row.completed_at = result.completed_at
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Could not record revaluation run {result.run_id} result: {e}")

        log = logger.info if result.success else logger.warning
        log(
            f"Revaluation {result.status.value}: "
            f"market={result.market_prices_updated}, accruals={result.accruals_updated}, "
            f"portfolios={result.portfolios_updated}, instruments={result.instrument_prices_updated}, "
            f"errors={len(result.errors)}"
        )
        return result

    def _record_skipped(
            self,
            db: Session,
            as_of: datetime,
            trigger: RevaluationTrigger,
    ) -> RunResult:
        now = datetime.now(timezone.utc)
        result = RunResult(
            status=RevaluationStatus.SKIPPED,
            trigger=trigger,
            as_of=as_of,
            started_at=now,
            completed_at=now,
        )
        run_row = RevaluationRun(
            trigger=trigger,
            status=RevaluationStatus.SKIPPED,
            as_of=as_of,
            started_at=now,
            completed_at=now,
        )
        try:
            db.add(run_row)
            db.commit()
            result.run_id = run_row.id
        except Exception as e:
            db.rollback()
            logger.error(f"Could not record skipped revaluation run: {e}")
        return result
