# backend/tests/services/test_trade_service.py
"""
Tests for TradeExecutor.

This module tests:
- Buy and sell arithmetic (cost, proceeds, fee, realized gain)
- Holding lifecycle (new holding per buy, CLOSED on full sell)
- Ownership and validation errors
- Atomicity: a failed transaction write leaves nothing behind
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.models import (
    Holding,
    HoldingStatus,
    InstrumentType,
    Portfolio,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from app.services.exceptions import (
    HoldingClosedError,
    HoldingNotFoundError,
    InstrumentNotFoundError,
    InstrumentNotTradableError,
    InsufficientQuantityError,
    PersistenceError,
    PortfolioNotFoundError,
    ValidationError,
)
from app.services.trade_service import TradeExecutor
from tests.conftest import (
    create_holding,
    create_instrument,
    create_portfolio,
    create_user,
)


@pytest.fixture
def executor() -> TradeExecutor:
    return TradeExecutor(fee_rate=Decimal("0.01"))


def count_transactions(db) -> int:
    return db.scalar(select(func.count()).select_from(Transaction))


# =============================================================================
# SELL
# =============================================================================

class TestSell:
    """Tests for selling from a holding."""

    @pytest.fixture
    def holding(self, db, sample_portfolio) -> Holding:
        """quantity=10, purchase_price=100, revalued to 110."""
        return create_holding(
            db,
            sample_portfolio,
            quantity=Decimal("10"),
            purchase_price=Decimal("100"),
            current_price=Decimal("110"),
        )

    def test_partial_sell_end_to_end(self, db, executor, sample_user, sample_portfolio, holding):
        result = executor.sell(db, sample_user.id, holding.id, Decimal("4"))

        preview = result.preview
        assert preview.proceeds == Decimal("440")
        assert preview.fee == Decimal("4.40")
        assert preview.net_proceeds == Decimal("435.60")
        assert preview.cost_basis == Decimal("400")
        assert preview.realized_gain == Decimal("35.60")
        assert preview.realized_gain_percentage == Decimal("8.9")
        assert result.holding_status == HoldingStatus.ACTIVE

        db.expire_all()
        stored = db.get(Holding, holding.id)
        assert stored.quantity == Decimal("6")
        assert stored.total_value == Decimal("660")
        assert stored.total_invested == Decimal("600")
        assert stored.total_gain == Decimal("60")

        portfolio = db.get(Portfolio, sample_portfolio.id)
        assert portfolio.total_value == Decimal("660")
        assert result.portfolio_totals.total_value == Decimal("660")

    def test_sell_records_completed_transaction(self, db, executor, sample_user, holding):
        result = executor.sell(db, sample_user.id, holding.id, Decimal("4"))

        transaction = db.get(Transaction, result.transaction_id)
        assert transaction.transaction_type == TransactionType.SELL
        assert transaction.status == TransactionStatus.COMPLETED
        assert transaction.amount == Decimal("435.60")
        assert transaction.fee == Decimal("4.40")
        assert transaction.realized_gain == Decimal("35.60")
        assert transaction.holding_id == holding.id
        assert transaction.user_id == sample_user.id

    def test_selling_everything_closes_holding(self, db, executor, sample_user, sample_portfolio, holding):
        result = executor.sell(db, sample_user.id, holding.id, Decimal("10"))

        assert result.preview.closes_holding
        assert result.holding_status == HoldingStatus.CLOSED

        db.expire_all()
        stored = db.get(Holding, holding.id)
        assert stored.status == HoldingStatus.CLOSED
        assert stored.quantity == Decimal("0")
        assert stored.total_value == Decimal("0")

        portfolio = db.get(Portfolio, sample_portfolio.id)
        assert portfolio.total_value == Decimal("0")
        assert portfolio.total_invested == Decimal("0")

    def test_selling_more_than_held_fails_and_changes_nothing(self, db, executor, sample_user, holding):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            executor.sell(db, sample_user.id, holding.id, Decimal("11"))

        assert exc_info.value.requested == Decimal("11")
        assert exc_info.value.available == Decimal("10")
        assert isinstance(exc_info.value, ValidationError)

        db.expire_all()
        stored = db.get(Holding, holding.id)
        assert stored.quantity == Decimal("10")
        assert stored.status == HoldingStatus.ACTIVE
        assert count_transactions(db) == 0

    def test_sell_of_closed_holding_fails(self, db, executor, sample_user, holding):
        executor.sell(db, sample_user.id, holding.id, Decimal("10"))

        with pytest.raises(HoldingClosedError):
            executor.sell(db, sample_user.id, holding.id, Decimal("1"))

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1"), Decimal("NaN")])
    def test_non_positive_quantity_is_rejected(self, db, executor, sample_user, holding, quantity):
        with pytest.raises(ValidationError) as exc_info:
            executor.sell(db, sample_user.id, holding.id, quantity)

        assert exc_info.value.field == "quantity"

    def test_other_users_holding_is_not_found(self, db, executor, holding):
        intruder = create_user(db, email="intruder@example.com")

        with pytest.raises(HoldingNotFoundError):
            executor.sell(db, intruder.id, holding.id, Decimal("1"))

    def test_unknown_holding_is_not_found(self, db, executor, sample_user):
        with pytest.raises(HoldingNotFoundError):
            executor.sell(db, sample_user.id, 4242, Decimal("1"))

    def test_transaction_failure_rolls_back_holding(self, db, executor, sample_user, sample_portfolio, holding):
        """If the transaction write fails, the quantity decrement is not visible either."""
        with patch.object(
            TradeExecutor,
            "_record_transaction",
            side_effect=OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(PersistenceError) as exc_info:
                executor.sell(db, sample_user.id, holding.id, Decimal("4"))

        assert exc_info.value.operation == "sell"

        db.expire_all()
        stored = db.get(Holding, holding.id)
        assert stored.quantity == Decimal("10")
        assert stored.total_value == Decimal("1100")
        assert count_transactions(db) == 0
        assert db.get(Portfolio, sample_portfolio.id).total_value == Decimal("0")

    def test_unexpected_error_rolls_back_sell(self, db, executor, sample_user, holding):
        with patch.object(TradeExecutor, "_record_transaction", side_effect=InvalidOperation()):
            with pytest.raises(InvalidOperation):
                executor.sell(db, sample_user.id, holding.id, Decimal("4"))

        assert not db.dirty
        assert db.get(Holding, holding.id).quantity == Decimal("10")
        assert count_transactions(db) == 0

    def test_sell_without_instrument_uses_portfolio_currency(self, db, executor, sample_user):
        portfolio = create_portfolio(db, sample_user, name="Dollars", currency="USD")
        holding = create_holding(db, portfolio, quantity=Decimal("5"))

        result = executor.sell(db, sample_user.id, holding.id, Decimal("1"))

        assert db.get(Transaction, result.transaction_id).currency == "USD"

    def test_preview_sell_changes_nothing(self, db, executor, sample_user, holding):
        preview = executor.preview_sell(db, sample_user.id, holding.id, Decimal("10"))

        assert preview.closes_holding
        assert preview.net_proceeds == Decimal("1089")

        db.expire_all()
        assert db.get(Holding, holding.id).quantity == Decimal("10")
        assert count_transactions(db) == 0


# =============================================================================
# BUY
# =============================================================================

class TestBuy:
    """Tests for buying marketplace instruments."""

    def test_buy_creates_holding_and_transaction(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db, current_price=Decimal("25.50"))

        result = executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("4"))

        assert result.preview.cost == Decimal("102")
        assert result.preview.fee == Decimal("1.02")
        assert result.preview.total_debit == Decimal("103.02")

        holding = db.get(Holding, result.holding_id)
        assert holding.quantity == Decimal("4")
        assert holding.purchase_price == Decimal("25.50")
        assert holding.current_price == Decimal("25.50")
        assert holding.total_value == Decimal("102")
        assert holding.total_gain == Decimal("0")
        assert holding.status == HoldingStatus.ACTIVE
        assert holding.symbol == "AAPL"
        assert holding.instrument_id == instrument.id

        transaction = db.get(Transaction, result.transaction_id)
        assert transaction.transaction_type == TransactionType.BUY
        assert transaction.amount == Decimal("103.02")

        portfolio = db.get(Portfolio, sample_portfolio.id)
        assert portfolio.total_value == Decimal("102")
        assert portfolio.total_invested == Decimal("102")

    def test_repeat_buy_creates_a_second_holding(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db, current_price=Decimal("10"))

        first = executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("1"))
        second = executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("2"))

        assert first.holding_id != second.holding_id
        assert second.portfolio_totals.holding_count == 2
        assert second.portfolio_totals.total_value == Decimal("30")

    def test_fixed_rate_buy_copies_rate_and_maturity(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(
            db,
            name="Treasury 2030",
            instrument_type=InstrumentType.BOND,
            symbol=None,
            current_price=Decimal("1000"),
            expected_return=Decimal("4.25"),
            maturity_date=date(2030, 6, 30),
        )

        result = executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("2"))

        holding = db.get(Holding, result.holding_id)
        assert holding.interest_rate == Decimal("4.25")
        assert holding.maturity_date == date(2030, 6, 30)
        assert holding.instrument_type == InstrumentType.BOND

    def test_other_users_portfolio_is_not_found(self, db, executor, sample_portfolio):
        intruder = create_user(db, email="intruder@example.com")
        instrument = create_instrument(db)

        with pytest.raises(PortfolioNotFoundError):
            executor.buy(db, intruder.id, sample_portfolio.id, instrument.id, Decimal("1"))

    def test_unknown_instrument_is_not_found(self, db, executor, sample_user, sample_portfolio):
        with pytest.raises(InstrumentNotFoundError):
            executor.buy(db, sample_user.id, sample_portfolio.id, 999, Decimal("1"))

    def test_unavailable_instrument_is_not_tradable(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db, is_available=False)

        with pytest.raises(InstrumentNotTradableError):
            executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("1"))

    def test_zero_priced_instrument_is_not_tradable(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db, current_price=Decimal("0"))

        with pytest.raises(InstrumentNotTradableError):
            executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("1"))

    def test_zero_quantity_is_rejected(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db)

        with pytest.raises(ValidationError):
            executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("0"))

    def test_transaction_failure_leaves_no_holding(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db)

        with patch.object(
            TradeExecutor,
            "_record_transaction",
            side_effect=OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(PersistenceError):
                executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("1"))

        assert db.scalar(select(func.count()).select_from(Holding)) == 0
        assert count_transactions(db) == 0

    def test_unexpected_error_leaves_no_pending_holding(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db)

        with patch.object(TradeExecutor, "_record_transaction", side_effect=InvalidOperation()):
            with pytest.raises(InvalidOperation):
                executor.buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("1"))

        assert db.scalar(select(func.count()).select_from(Holding)) == 0

    def test_preview_buy_changes_nothing(self, db, executor, sample_user, sample_portfolio):
        instrument = create_instrument(db, current_price=Decimal("200"))

        preview = executor.preview_buy(db, sample_user.id, sample_portfolio.id, instrument.id, Decimal("0.5"))

        assert preview.cost == Decimal("100")
        assert preview.fee == Decimal("1")
        assert preview.total_debit == Decimal("101")
        assert db.scalar(select(func.count()).select_from(Holding)) == 0


class TestFeeRate:
    def test_defaults_to_configured_rate(self):
        from app.config import settings
        assert TradeExecutor().fee_rate == settings.trade_fee_rate

    def test_zero_fee(self, db, sample_user, sample_portfolio):
        holding = create_holding(db, sample_portfolio, quantity=Decimal("2"), purchase_price=Decimal("5"))
        preview = TradeExecutor(fee_rate=Decimal("0")).preview_sell(db, sample_user.id, holding.id, Decimal("2"))

        assert preview.fee == Decimal("0")
        assert preview.net_proceeds == preview.proceeds
