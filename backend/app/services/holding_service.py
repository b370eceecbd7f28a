# backend/app/services/holding_service.py
"""
Holding Service for reads and administrator price corrections.

This service handles:
- Fetching a single holding for its owner
- Portfolio summary (aggregate totals plus holdings)
- Manual price updates by administrators

Design Principles:
- No HTTP Knowledge: Raises domain exceptions, not HTTPException
- Always re-reads rows from the session; nothing is cached across requests
- A price update re-derives the holding and the portfolio in one commit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Holding, HoldingStatus, Portfolio
from app.services.constants import ZERO
from app.services.exceptions import (
    HoldingClosedError,
    HoldingNotFoundError,
    PersistenceError,
    PortfolioNotFoundError,
    ServiceError,
    ValidationError,
)
from app.services.valuation.aggregator import PortfolioAggregator
from app.services.valuation.calculators import HoldingValuator

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSummary:
    """Portfolio with its aggregate totals and holdings."""

    portfolio: Portfolio
    holdings: list[Holding] = field(default_factory=list)

    @property
    def active_holding_count(self) -> int:
        return sum(1 for h in self.holdings if h.status == HoldingStatus.ACTIVE)


class HoldingService:
    """
    Read access to holdings and portfolios, plus admin price corrections.

    Example:
        service = HoldingService()
        summary = service.get_portfolio_summary(db, user_id=1, portfolio_id=1)
        print(summary.portfolio.total_value, summary.active_holding_count)
    """

    def __init__(
            self,
            valuator: HoldingValuator | None = None,
            aggregator: PortfolioAggregator | None = None,
    ) -> None:
        self._valuator = valuator or HoldingValuator()
        self._aggregator = aggregator or PortfolioAggregator()

    def get_holding(self, db: Session, user_id: int, holding_id: int) -> Holding:
        """
        Raises:
            HoldingNotFoundError: Missing holding or owned by another user
        """
        holding = db.get(Holding, holding_id)
        if holding is None or holding.user_id != user_id:
            raise HoldingNotFoundError(holding_id)
        return holding

    def get_portfolio_summary(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int,
            include_closed: bool = False,
    ) -> PortfolioSummary:
        """
        Load a portfolio with its holdings.

        Args:
            include_closed: Also list CLOSED holdings (they never count
                toward the totals)

        Raises:
            PortfolioNotFoundError: Missing portfolio or owned by another user
        """
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None or portfolio.user_id != user_id:
            raise PortfolioNotFoundError(portfolio_id)

        stmt = select(Holding).where(Holding.portfolio_id == portfolio_id)
        if not include_closed:
            stmt = stmt.where(Holding.status == HoldingStatus.ACTIVE)
        holdings = list(db.scalars(stmt.order_by(Holding.id)).all())

        return PortfolioSummary(portfolio=portfolio, holdings=holdings)

    def update_holding_price(
            self,
            db: Session,
            holding_id: int,
            price: Decimal,
    ) -> Holding:
        """
        Set a holding's current price by hand and re-derive its totals.

        Administrator operation; ownership is not checked.

        Raises:
            ValidationError: Non-positive price
            HoldingNotFoundError: Unknown holding
            HoldingClosedError: Holding already closed
            PersistenceError: Write failed (nothing is changed)
        """
        if not isinstance(price, Decimal) or not price.is_finite() or price <= ZERO:
            raise ValidationError("Price must be greater than zero", field="price")

        try:
            holding = db.scalar(
                select(Holding)
                .where(Holding.id == holding_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if holding is None:
                raise HoldingNotFoundError(holding_id)
            if holding.status != HoldingStatus.ACTIVE:
                raise HoldingClosedError(holding_id)

            old_price = holding.current_price
            self._valuator.apply(holding, price)
            self._aggregator.recompute(db, holding.portfolio_id)
            db.commit()
        except ServiceError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Price update failed for holding {holding_id}: {e}")
            raise PersistenceError("price update", str(e)) from e
        except Exception:
            db.rollback()
            raise

        logger.info(f"Holding {holding_id} price set by admin: {old_price} -> {price}")
        db.refresh(holding)
        return holding
