# backend/app/services/trade_service.py
"""
Trade executor: buy and sell marketplace instruments.

This service handles:
- Validating the caller, the portfolio/holding and the quantity
- Computing cost or proceeds and the flat trading fee
- Creating or mutating the holding and recording the transaction
- Re-aggregating the owning portfolio

Each buy or sell is one database transaction. Holding mutation,
transaction record and portfolio aggregate are committed together; any
failure rolls all three back, so a holding never changes without its
transaction and vice versa.

Concurrency:
    The holding row is read with SELECT ... FOR UPDATE and carries a
    version column checked on UPDATE. Two sells racing on the same
    holding cannot both succeed against the same starting quantity; the
    loser gets a PersistenceError and nothing is written.

Usage:
    from app.services.trade_service import TradeExecutor

    executor = TradeExecutor()
    result = executor.buy(db, user_id=1, portfolio_id=1, instrument_id=3, quantity=Decimal("10"))
    result = executor.sell(db, user_id=1, holding_id=result.holding_id, quantity=Decimal("4"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import (
    Holding,
    HoldingStatus,
    Instrument,
    Portfolio,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from app.services.constants import ZERO
from app.services.exceptions import (
    HoldingClosedError,
    HoldingNotFoundError,
    InstrumentNotFoundError,
    InstrumentNotTradableError,
    InsufficientQuantityError,
    PersistenceError,
    PortfolioNotFoundError,
    ServiceError,
    ValidationError,
)
from app.services.valuation.aggregator import PortfolioAggregator
from app.services.valuation.calculators import (
    HoldingValuator,
    gain_percentage,
    is_fixed_rate,
    quantize_money,
)
from app.services.valuation.types import PortfolioTotals

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class BuyPreview:
    """
    Cost breakdown of a buy.

    total_debit = cost + fee, where cost = quantity * unit_price
    """

    portfolio_id: int
    instrument_id: int
    quantity: Decimal
    unit_price: Decimal
    cost: Decimal
    fee: Decimal
    total_debit: Decimal


@dataclass(frozen=True)
class BuyResult:
    preview: BuyPreview
    holding_id: int
    transaction_id: int
    portfolio_totals: PortfolioTotals


@dataclass(frozen=True)
class SellPreview:
    """
    Proceeds breakdown of a sell.

    net_proceeds = proceeds - fee
    realized_gain = net_proceeds - cost_basis, with cost_basis = quantity * purchase_price
    """

    holding_id: int
    portfolio_id: int
    quantity: Decimal
    unit_price: Decimal
    proceeds: Decimal
    fee: Decimal
    net_proceeds: Decimal
    cost_basis: Decimal
    realized_gain: Decimal
    realized_gain_percentage: Decimal
    remaining_quantity: Decimal

    @property
    def closes_holding(self) -> bool:
        return self.remaining_quantity == ZERO


@dataclass(frozen=True)
class SellResult:
    preview: SellPreview
    transaction_id: int
    holding_status: HoldingStatus
    portfolio_totals: PortfolioTotals


# =============================================================================
# SERVICE
# =============================================================================

class TradeExecutor:
    """
    Executes buys and sells as single atomic units.

    Args:
        fee_rate: Fraction of trade value charged as fee (defaults to
            TRADE_FEE_RATE from settings)
        valuator: HoldingValuator used for every holding mutation
        aggregator: PortfolioAggregator invoked after every mutation
    """

    def __init__(
            self,
            fee_rate: Decimal | None = None,
            valuator: HoldingValuator | None = None,
            aggregator: PortfolioAggregator | None = None,
    ) -> None:
        self._fee_rate = settings.trade_fee_rate if fee_rate is None else fee_rate
        self._valuator = valuator or HoldingValuator()
        self._aggregator = aggregator or PortfolioAggregator()

    @property
    def fee_rate(self) -> Decimal:
        return self._fee_rate

    # =========================================================================
    # BUY
    # =========================================================================

    def preview_buy(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int,
            instrument_id: int,
            quantity: Decimal,
    ) -> BuyPreview:
        """
        Validate a buy and return its cost breakdown without changing anything.

        Raises:
            ValidationError: Non-positive quantity
            PortfolioNotFoundError: Missing portfolio or not owned by user
            InstrumentNotFoundError: Unknown instrument
            InstrumentNotTradableError: Unavailable instrument or no positive price
        """
        self._validate_quantity(quantity)
        self._get_owned_portfolio(db, user_id, portfolio_id)
        instrument = self._get_tradable_instrument(db, instrument_id)
        return self._price_buy(portfolio_id, instrument, quantity)

    def buy(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int,
            instrument_id: int,
            quantity: Decimal,
    ) -> BuyResult:
        """
        Buy an instrument into a portfolio.

        Every buy creates a new holding at the instrument's current price;
        existing holdings of the same instrument are left untouched.

        Raises:
            Same as preview_buy, plus PersistenceError if the write fails
        """
        try:
            preview = self.preview_buy(db, user_id, portfolio_id, instrument_id, quantity)
            instrument = db.get(Instrument, instrument_id)

            holding = Holding(
                portfolio_id=portfolio_id,
                user_id=user_id,
                instrument_id=instrument.id,
                instrument_type=instrument.instrument_type,
                name=instrument.name,
                symbol=instrument.symbol,
                quantity=preview.quantity,
                purchase_price=preview.unit_price,
                purchase_date=datetime.now(timezone.utc),
                status=HoldingStatus.ACTIVE,
            )
            if is_fixed_rate(instrument.instrument_type):
                holding.interest_rate = instrument.expected_return
                holding.maturity_date = instrument.maturity_date

            self._valuator.apply(holding, preview.unit_price)
            db.add(holding)
            db.flush()

            transaction = self._record_transaction(
                db,
                user_id=user_id,
                portfolio_id=portfolio_id,
                holding_id=holding.id,
                transaction_type=TransactionType.BUY,
                amount=preview.total_debit,
                currency=instrument.currency,
                quantity=preview.quantity,
                unit_price=preview.unit_price,
                fee=preview.fee,
                description=f"Buy {preview.quantity} x {instrument.name}",
            )

            totals = self._aggregator.recompute(db, portfolio_id)
            holding_id, transaction_id = holding.id, transaction.id
            db.commit()
        except ServiceError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Buy failed for portfolio {portfolio_id}, instrument {instrument_id}: {e}")
            raise PersistenceError("buy", str(e)) from e
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"BUY portfolio={portfolio_id} instrument={instrument_id} "
            f"qty={preview.quantity} price={preview.unit_price} debit={preview.total_debit} "
            f"holding={holding_id}"
        )
        return BuyResult(
            preview=preview,
            holding_id=holding_id,
            transaction_id=transaction_id,
            portfolio_totals=totals,
        )

    # =========================================================================
    # SELL
    # =========================================================================

    def preview_sell(
            self,
            db: Session,
            user_id: int,
            holding_id: int,
            quantity: Decimal,
    ) -> SellPreview:
        """
        Validate a sell and return its proceeds breakdown without changing anything.

        Raises:
            ValidationError: Non-positive quantity
            HoldingNotFoundError: Missing holding or not owned by user
            HoldingClosedError: Holding already closed
            InsufficientQuantityError: quantity > holding.quantity
        """
        self._validate_quantity(quantity)
        holding = self._get_sellable_holding(db, user_id, holding_id, quantity)
        return self._price_sell(holding, quantity)

    def sell(
            self,
            db: Session,
            user_id: int,
            holding_id: int,
            quantity: Decimal,
    ) -> SellResult:
        """
        Sell part or all of a holding at its current price.

        Selling the whole quantity closes the holding. A rejected sell
        leaves the holding exactly as it was.

        Raises:
            Same as preview_sell, plus PersistenceError if the write fails
            (including a concurrent update of the same holding)
        """
        try:
            self._validate_quantity(quantity)
            holding = self._get_sellable_holding(db, user_id, holding_id, quantity, lock=True)
            preview = self._price_sell(holding, quantity)

            holding.quantity = preview.remaining_quantity
            if preview.closes_holding:
                holding.status = HoldingStatus.CLOSED
            self._valuator.apply(holding, holding.current_price)

            transaction = self._record_transaction(
                db,
                user_id=user_id,
                portfolio_id=holding.portfolio_id,
                holding_id=holding.id,
                transaction_type=TransactionType.SELL,
                amount=preview.net_proceeds,
                currency=holding.instrument.currency if holding.instrument else holding.portfolio.currency,
                quantity=preview.quantity,
                unit_price=preview.unit_price,
                fee=preview.fee,
                realized_gain=preview.realized_gain,
                description=f"Sell {preview.quantity} x {holding.name}",
            )

            totals = self._aggregator.recompute(db, holding.portfolio_id)
            status, transaction_id = holding.status, transaction.id
            db.commit()
        except ServiceError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Sell failed for holding {holding_id}: {e}")
            raise PersistenceError("sell", str(e)) from e
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"SELL holding={holding_id} qty={preview.quantity} price={preview.unit_price} "
            f"net={preview.net_proceeds} realized={preview.realized_gain} status={status.value}"
        )
        return SellResult(
            preview=preview,
            transaction_id=transaction_id,
            holding_status=status,
            portfolio_totals=totals,
        )

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    @staticmethod
    def _validate_quantity(quantity: Decimal) -> None:
        if not isinstance(quantity, Decimal) or not quantity.is_finite():
            raise ValidationError("Quantity must be a finite decimal", field="quantity")
        if quantity <= ZERO:
            raise ValidationError("Quantity must be greater than zero", field="quantity")

    @staticmethod
    def _get_owned_portfolio(db: Session, user_id: int, portfolio_id: int) -> Portfolio:
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None or portfolio.user_id != user_id:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    @staticmethod
    def _get_tradable_instrument(db: Session, instrument_id: int) -> Instrument:
        instrument = db.get(Instrument, instrument_id)
        if instrument is None:
            raise InstrumentNotFoundError(instrument_id)
        if not instrument.is_available:
            raise InstrumentNotTradableError(instrument_id, "instrument is not available")
        if instrument.current_price is None or instrument.current_price <= ZERO:
            raise InstrumentNotTradableError(instrument_id, "instrument has no positive price")
        return instrument

    @staticmethod
    def _get_sellable_holding(
            db: Session,
            user_id: int,
            holding_id: int,
            quantity: Decimal,
            lock: bool = False,
    ) -> Holding:
        stmt = select(Holding).where(Holding.id == holding_id)
        if lock:
            # Re-read the row under lock; never trust a quantity cached in the session
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        holding = db.scalar(stmt)

        if holding is None or holding.user_id != user_id:
            raise HoldingNotFoundError(holding_id)
        if holding.status != HoldingStatus.ACTIVE:
            raise HoldingClosedError(holding_id)
        if quantity > holding.quantity:
            raise InsufficientQuantityError(holding_id, quantity, holding.quantity)
        return holding

    def _price_buy(self, portfolio_id: int, instrument: Instrument, quantity: Decimal) -> BuyPreview:
        unit_price = quantize_money(instrument.current_price)
        cost = quantize_money(quantity * unit_price)
        fee = quantize_money(cost * self._fee_rate)
        return BuyPreview(
            portfolio_id=portfolio_id,
            instrument_id=instrument.id,
            quantity=quantity,
            unit_price=unit_price,
            cost=cost,
            fee=fee,
            total_debit=cost + fee,
        )

    def _price_sell(self, holding: Holding, quantity: Decimal) -> SellPreview:
        unit_price = quantize_money(holding.current_price)
        proceeds = quantize_money(quantity * unit_price)
        fee = quantize_money(proceeds * self._fee_rate)
        net_proceeds = proceeds - fee
        cost_basis = quantize_money(quantity * holding.purchase_price)
        realized_gain = net_proceeds - cost_basis
        return SellPreview(
            holding_id=holding.id,
            portfolio_id=holding.portfolio_id,
            quantity=quantity,
            unit_price=unit_price,
            proceeds=proceeds,
            fee=fee,
            net_proceeds=net_proceeds,
            cost_basis=cost_basis,
            realized_gain=realized_gain,
            realized_gain_percentage=gain_percentage(realized_gain, cost_basis),
            remaining_quantity=holding.quantity - quantity,
        )

    def _record_transaction(self, db: Session, **fields) -> Transaction:
        transaction = Transaction(status=TransactionStatus.COMPLETED, **fields)
        db.add(transaction)
        db.flush()
        return transaction
