# backend/app/services/constants.py
"""
Centralized constants for the valuation engine.

Usage:
    from app.services.constants import (
        DAYS_PER_YEAR,
        MONEY_QUANTUM,
        FIXED_RATE_TYPES,
    )
"""

from decimal import Decimal, ROUND_HALF_EVEN

from app.models import InstrumentType


# =============================================================================
# DECIMAL PRECISION
# =============================================================================

# Every computed price or amount is quantized to the storage scale of
# Numeric(28, 10), so a value read back from the database compares equal
# to the value that was written.
MONEY_QUANTUM: Decimal = Decimal("0.0000000001")

# Percentages are stored as Numeric(18, 8)
PERCENT_QUANTUM: Decimal = Decimal("0.00000001")

ROUNDING: str = ROUND_HALF_EVEN

ZERO: Decimal = Decimal("0")
ONE_HUNDRED: Decimal = Decimal("100")


# =============================================================================
# ACCRUAL
# =============================================================================

# Simple annual accrual divides by a 365-day year (no leap-year adjustment)
DAYS_PER_YEAR: int = 365

# Instrument types priced by accrual instead of a market quote
FIXED_RATE_TYPES: tuple[InstrumentType, ...] = (
    InstrumentType.BOND,
    InstrumentType.CORPORATE_BOND,
    InstrumentType.TERM_DEPOSIT,
    InstrumentType.FIXED_RATE_DEPOSIT,
)


# =============================================================================
# PRICE SOURCE
# =============================================================================

# yfinance history window used to find the latest close
# 5 days covers weekends and single-day market holidays
QUOTE_HISTORY_PERIOD: str = "5d"


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Number of failures before circuit opens and blocks requests
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds to wait before testing if the feed has recovered
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Maximum calls allowed in half-open state to test recovery
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3

# Time window (seconds) for counting failures (0 = count all failures)
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0
