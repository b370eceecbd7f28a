# backend/tests/services/test_revaluation_service.py
"""
Tests for the daily revaluation job.

This module tests:
- Market re-pricing and fixed-rate accrual
- The "only if it differs" guard (verified by counting UPDATE statements)
- Per-holding failure isolation
- Missing quote policies and price source outages
- Run exclusivity (SKIPPED) and the persisted run row
- Instrument catalogue refresh
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import event, select

from app.models import (
    Holding,
    HoldingStatus,
    Instrument,
    InstrumentType,
    Portfolio,
    RevaluationRun,
    RevaluationStatus,
    RevaluationTrigger,
)
from app.services.exceptions import ProviderUnavailableError
from app.services.revaluation import RevaluationService, is_run_in_progress
from app.services.revaluation.service import _run_lock
from app.services.trade_service import TradeExecutor
from app.services.valuation import HoldingValuator
from tests.conftest import (
    FailingPriceSource,
    MockPriceSource,
    create_holding,
    create_instrument,
    create_portfolio,
)


AS_OF = datetime(2026, 3, 1, 16, 30, tzinfo=timezone.utc)
ONE_YEAR_BEFORE = datetime(2025, 3, 1, 16, 30, tzinfo=timezone.utc)


@contextmanager
def count_statements(engine, prefix: str):
    """Count SQL statements starting with prefix (e.g. "UPDATE holdings")."""
    seen: list[str] = []

    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith(prefix.upper()):
            seen.append(statement)

    event.listen(engine, "before_cursor_execute", before_cursor_execute)
    try:
        yield seen
    finally:
        event.remove(engine, "before_cursor_execute", before_cursor_execute)


def make_service(price_source, **kwargs) -> RevaluationService:
    kwargs.setdefault("missing_quote_policy", "fallback")
    return RevaluationService(price_source=price_source, **kwargs)


class ExplodingValuator(HoldingValuator):
    """Fails to apply a price to one specific holding."""

    def __init__(self, bad_holding_id: int):
        self.bad_holding_id = bad_holding_id

    def apply(self, holding, current_price):
        if holding.id == self.bad_holding_id:
            raise RuntimeError("simulated write failure")
        return super().apply(holding, current_price)


class SellingPriceSource(MockPriceSource):
    """Sells a whole holding while the run is fetching quotes."""

    def __init__(self, db, holding, prices):
        super().__init__(prices)
        self.db = db
        self.user_id = holding.user_id
        self.holding_id = holding.id
        self.quantity = holding.quantity

    def get_quotes(self, symbols):
        TradeExecutor().sell(self.db, self.user_id, self.holding_id, self.quantity)
        return super().get_quotes(symbols)


# =============================================================================
# MARKET AND ACCRUAL PRICING
# =============================================================================

class TestRevaluationPricing:

    def test_market_holding_is_repriced(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio, quantity=Decimal("10"), purchase_price=Decimal("50"))
        service = make_service(MockPriceSource({"AAPL": Decimal("60")}))

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert result.success
        assert result.status == RevaluationStatus.COMPLETED
        assert result.market_prices_updated == 1
        assert result.accruals_updated == 0
        assert result.portfolios_updated == 1

        db.expire_all()
        stored = db.get(Holding, holding.id)
        assert stored.current_price == Decimal("60")
        assert stored.total_value == Decimal("600")
        assert stored.total_gain == Decimal("100")
        assert db.get(Portfolio, sample_portfolio.id).total_value == Decimal("600")

    def test_fixed_rate_holding_accrues(self, db, sample_portfolio):
        holding = create_holding(
            db,
            sample_portfolio,
            instrument_type=InstrumentType.BOND,
            name="Treasury",
            symbol=None,
            quantity=Decimal("1"),
            purchase_price=Decimal("100"),
            interest_rate=Decimal("10"),
            purchase_date=ONE_YEAR_BEFORE,
        )
        service = make_service(MockPriceSource())

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert result.accruals_updated == 1
        assert result.market_prices_updated == 0

        db.expire_all()
        assert db.get(Holding, holding.id).current_price == Decimal("110")
        assert db.get(Portfolio, sample_portfolio.id).total_value == Decimal("110")

    def test_fixed_rate_holding_with_symbol_is_not_market_priced(self, db, sample_portfolio):
        create_holding(
            db,
            sample_portfolio,
            instrument_type=InstrumentType.CORPORATE_BOND,
            symbol="CORP",
            purchase_price=Decimal("100"),
            interest_rate=Decimal("10"),
            purchase_date=ONE_YEAR_BEFORE,
        )
        source = MockPriceSource({"CORP": Decimal("500")})

        result = make_service(source).run_daily_revaluation(db, as_of=AS_OF)

        assert result.market_prices_updated == 0
        assert result.accruals_updated == 1
        assert source.requested == []

    def test_closed_holdings_are_ignored(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio, status=HoldingStatus.CLOSED)
        service = make_service(MockPriceSource({"AAPL": Decimal("999")}))

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert result.market_prices_updated == 0
        db.expire_all()
        assert db.get(Holding, holding.id).current_price == Decimal("50")

    def test_holding_closed_during_quote_fetch_is_skipped(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio, symbol="MSFT", quantity=Decimal("10"))
        source = SellingPriceSource(db, holding, {"MSFT": Decimal("999")})

        result = make_service(source).run_daily_revaluation(db, as_of=AS_OF)

        assert result.success
        assert result.market_prices_updated == 0
        assert result.portfolios_updated == 0
        db.expire_all()
        closed = db.get(Holding, holding.id)
        assert closed.status == HoldingStatus.CLOSED
        assert closed.current_price == Decimal("50")
        assert db.get(Portfolio, sample_portfolio.id).total_value == Decimal("0")

    def test_symbols_are_fetched_once(self, db, sample_user):
        first = create_portfolio(db, sample_user, name="First")
        second = create_portfolio(db, sample_user, name="Second")
        create_holding(db, first, symbol="AAPL")
        create_holding(db, second, symbol="aapl")
        create_holding(db, second, symbol="MSFT")
        source = MockPriceSource({"AAPL": Decimal("51"), "MSFT": Decimal("52")})

        result = make_service(source).run_daily_revaluation(db, as_of=AS_OF)

        assert len(source.requested) == 1
        assert source.requested[0] == ["AAPL", "MSFT"]
        assert result.market_prices_updated == 3
        assert result.portfolios_updated == 2

    def test_default_as_of_comes_from_clock(self, db):
        service = make_service(MockPriceSource(), clock=lambda: AS_OF)

        result = service.run_daily_revaluation(db)

        assert result.as_of == AS_OF


# =============================================================================
# NO-OP GUARD
# =============================================================================

class TestNoOpGuard:
    """Unchanged prices must not be written."""

    def test_unchanged_quote_writes_nothing(self, db, db_engine, sample_portfolio):
        create_holding(db, sample_portfolio, purchase_price=Decimal("50"), current_price=Decimal("50"))
        service = make_service(MockPriceSource({"AAPL": Decimal("50.00")}))

        with count_statements(db_engine, "UPDATE holdings") as updates:
            result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert updates == []
        assert result.market_prices_updated == 0
        assert result.portfolios_updated == 0
        assert result.success

    def test_second_run_is_a_no_op(self, db, db_engine, sample_portfolio):
        create_holding(db, sample_portfolio, purchase_price=Decimal("50"))
        create_holding(
            db,
            sample_portfolio,
            instrument_type=InstrumentType.TERM_DEPOSIT,
            name="Deposit",
            symbol=None,
            purchase_price=Decimal("1000"),
            interest_rate=Decimal("3.5"),
            purchase_date=ONE_YEAR_BEFORE,
        )
        service = make_service(MockPriceSource({"AAPL": Decimal("57.123")}))

        first = service.run_daily_revaluation(db, as_of=AS_OF)
        with count_statements(db_engine, "UPDATE holdings") as updates:
            second = service.run_daily_revaluation(db, as_of=AS_OF)

        assert first.market_prices_updated == 1
        assert first.accruals_updated == 1
        assert updates == []
        assert second.market_prices_updated == 0
        assert second.accruals_updated == 0
        assert second.portfolios_updated == 0


# =============================================================================
# FAILURE HANDLING
# =============================================================================

class TestFailureIsolation:

    def test_one_failing_holding_does_not_stop_the_run(self, db, sample_portfolio):
        bad = create_holding(db, sample_portfolio, symbol="AAPL")
        good = create_holding(db, sample_portfolio, symbol="MSFT")
        service = make_service(
            MockPriceSource({"AAPL": Decimal("70"), "MSFT": Decimal("80")}),
            valuator=ExplodingValuator(bad_holding_id=bad.id),
        )

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert not result.success
        assert result.status == RevaluationStatus.PARTIAL
        assert result.market_prices_updated == 1
        assert result.portfolios_updated == 1
        assert len(result.errors) == 1
        assert result.errors[0].scope == "holding"
        assert result.errors[0].id == bad.id

        db.expire_all()
        assert db.get(Holding, bad.id).current_price == Decimal("50")
        assert db.get(Holding, good.id).current_price == Decimal("80")
        assert db.get(Portfolio, sample_portfolio.id).total_value == Decimal("1300")

    def test_missing_quote_keeps_stored_price(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio, symbol="GONE")

        result = make_service(MockPriceSource()).run_daily_revaluation(db, as_of=AS_OF)

        assert result.success
        assert result.market_prices_updated == 0
        db.expire_all()
        assert db.get(Holding, holding.id).current_price == Decimal("50")

    def test_missing_quote_with_fail_policy_is_recorded(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio, symbol="GONE")
        service = make_service(MockPriceSource(), missing_quote_policy="fail")

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert not result.success
        assert result.status == RevaluationStatus.PARTIAL
        assert result.errors[0].id == holding.id
        assert "GONE" in result.errors[0].message

    def test_price_source_outage_falls_back_to_stored_prices(self, db, sample_portfolio):
        market = create_holding(db, sample_portfolio, symbol="AAPL")
        create_holding(
            db,
            sample_portfolio,
            instrument_type=InstrumentType.BOND,
            symbol=None,
            purchase_price=Decimal("100"),
            interest_rate=Decimal("10"),
            purchase_date=ONE_YEAR_BEFORE,
        )

        result = make_service(FailingPriceSource()).run_daily_revaluation(db, as_of=AS_OF)

        assert result.success
        assert result.quotes_fetched == 0
        assert result.accruals_updated == 1
        db.expire_all()
        assert db.get(Holding, market.id).current_price == Decimal("50")

    def test_single_symbol_failure_is_skipped(self, db, sample_portfolio):
        create_holding(db, sample_portfolio, symbol="AAPL")
        create_holding(db, sample_portfolio, symbol="MSFT")
        source = MockPriceSource({"MSFT": Decimal("60")})
        source.set_error("AAPL", ProviderUnavailableError(provider="mock", reason="timeout"))

        result = make_service(source).run_daily_revaluation(db, as_of=AS_OF)

        assert result.success
        assert result.quotes_fetched == 1
        assert result.market_prices_updated == 1


# =============================================================================
# RUN BOOKKEEPING
# =============================================================================

class TestRunBookkeeping:

    def test_run_row_is_persisted(self, db, sample_portfolio):
        create_holding(db, sample_portfolio)
        service = make_service(MockPriceSource({"AAPL": Decimal("60")}))

        result = service.run_daily_revaluation(db, as_of=AS_OF, trigger=RevaluationTrigger.MANUAL)

        run = db.get(RevaluationRun, result.run_id)
        assert run.status == RevaluationStatus.COMPLETED
        assert run.trigger == RevaluationTrigger.MANUAL
        assert run.market_prices_updated == 1
        assert run.portfolios_updated == 1
        assert run.errors is None
        assert run.completed_at is not None
        assert run.correlation_id == result.correlation_id
        assert result.correlation_id.startswith("revaluation-")

    def test_errors_are_persisted(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio, symbol="GONE")
        service = make_service(MockPriceSource(), missing_quote_policy="fail")

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        run = db.get(RevaluationRun, result.run_id)
        assert run.status == RevaluationStatus.PARTIAL
        assert run.errors[0]["scope"] == "holding"
        assert run.errors[0]["id"] == holding.id

    def test_concurrent_trigger_is_skipped(self, db, sample_portfolio):
        holding = create_holding(db, sample_portfolio)
        service = make_service(MockPriceSource({"AAPL": Decimal("60")}))

        _run_lock.acquire()
        try:
            assert is_run_in_progress()
            result = service.run_daily_revaluation(db, as_of=AS_OF, trigger=RevaluationTrigger.MANUAL)
        finally:
            _run_lock.release()

        assert result.status == RevaluationStatus.SKIPPED
        assert result.market_prices_updated == 0
        assert db.get(RevaluationRun, result.run_id).status == RevaluationStatus.SKIPPED
        db.expire_all()
        assert db.get(Holding, holding.id).current_price == Decimal("50")
        assert not is_run_in_progress()

    def test_lock_is_released_after_run(self, db):
        make_service(MockPriceSource()).run_daily_revaluation(db, as_of=AS_OF)

        assert not is_run_in_progress()

    def test_list_runs_newest_first(self, db):
        service = make_service(MockPriceSource())
        first = service.run_daily_revaluation(db, as_of=AS_OF)
        second = service.run_daily_revaluation(db, as_of=AS_OF)

        runs = service.list_runs(db, limit=10)

        assert [r.id for r in runs] == [second.run_id, first.run_id]
        assert len(service.list_runs(db, limit=1)) == 1


# =============================================================================
# INSTRUMENT CATALOGUE
# =============================================================================

class TestInstrumentRefresh:

    def test_instrument_price_is_refreshed(self, db):
        instrument = create_instrument(db, symbol="AAPL", current_price=Decimal("100"))
        service = make_service(MockPriceSource({"AAPL": Decimal("120")}))

        result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert result.instrument_prices_updated == 1
        db.expire_all()
        stored = db.get(Instrument, instrument.id)
        assert stored.current_price == Decimal("120")
        assert stored.last_price_update is not None

    def test_unchanged_instrument_price_is_not_written(self, db, db_engine):
        create_instrument(db, symbol="AAPL", current_price=Decimal("100"))
        service = make_service(MockPriceSource({"AAPL": Decimal("100")}))

        with count_statements(db_engine, "UPDATE instruments") as updates:
            result = service.run_daily_revaluation(db, as_of=AS_OF)

        assert updates == []
        assert result.instrument_prices_updated == 0

    def test_unavailable_instruments_are_skipped(self, db):
        instrument = create_instrument(db, symbol="AAPL", current_price=Decimal("100"), is_available=False)
        source = MockPriceSource({"AAPL": Decimal("120")})

        result = make_service(source).run_daily_revaluation(db, as_of=AS_OF)

        assert result.instrument_prices_updated == 0
        assert db.scalar(select(Instrument.current_price).where(Instrument.id == instrument.id)) == Decimal("100")
