# backend/app/routers/__init__.py
"""
API routers for the Portfolio Valuation Engine.

Each router handles a specific domain:
- trades: Buy/sell with previews
- holdings: Holding and portfolio summary reads
- admin: Price corrections and revaluation runs
"""

from app.routers.admin import router as admin_router
from app.routers.holdings import router as holdings_router
from app.routers.trades import router as trades_router

__all__ = [
    "trades_router",
    "holdings_router",
    "admin_router",
]
