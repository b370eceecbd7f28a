# backend/app/services/valuation/aggregator.py
"""
Portfolio aggregate recompute.

A portfolio's totals are always re-derived from its ACTIVE holdings,
never patched incrementally, so a missed or partial update cannot leave
drift behind: the next recompute overwrites it.

The aggregator flushes pending holding changes before reading, and does
not commit. The caller decides the transaction boundary: the trade
executor commits holding, transaction and aggregate together; the
revaluation job commits each portfolio on its own.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Holding, HoldingStatus, Portfolio
from app.services.exceptions import PortfolioNotFoundError
from app.services.valuation.calculators import sum_totals
from app.services.valuation.types import HoldingValuation, PortfolioTotals

logger = logging.getLogger(__name__)


class PortfolioAggregator:
    """
    Recomputes and persists portfolio totals.

    Usage:
        totals = PortfolioAggregator().recompute(db, portfolio_id=1)
        db.commit()
    """

    def compute(self, db: Session, portfolio_id: int) -> PortfolioTotals:
        """Sum the ACTIVE holdings of a portfolio without writing anything."""
        # Session has autoflush disabled; the query must see pending mutations
        db.flush()

        holdings = db.scalars(
            select(Holding).where(
                Holding.portfolio_id == portfolio_id,
                Holding.status == HoldingStatus.ACTIVE,
            )
        ).all()

        return sum_totals([
            HoldingValuation(
                current_price=h.current_price,
                total_value=h.total_value,
                total_invested=h.total_invested,
                total_gain=h.total_gain,
                gain_percentage=h.gain_percentage,
            )
            for h in holdings
        ])

    def recompute(self, db: Session, portfolio_id: int) -> PortfolioTotals:
        """
        Re-derive and store the four aggregate fields of a portfolio.

        Raises:
            PortfolioNotFoundError: If the portfolio does not exist
        """
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)

        totals = self.compute(db, portfolio_id)

        portfolio.total_value = totals.total_value
        portfolio.total_invested = totals.total_invested
        portfolio.total_gain = totals.total_gain
        portfolio.gain_percentage = totals.gain_percentage
        db.flush()

        logger.debug(
            f"Portfolio {portfolio_id} recomputed: value={totals.total_value}, "
            f"invested={totals.total_invested}, holdings={totals.holding_count}"
        )
        return totals
