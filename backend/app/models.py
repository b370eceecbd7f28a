# backend/app/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Date, DateTime, ForeignKey, Enum, Numeric, Boolean, JSON, Integer, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Money is stored at scale 10 so computed Decimals survive a round-trip unchanged
MONEY = Numeric(28, 10)
PERCENT = Numeric(18, 8)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums help enforce data integrity at the database level
class InstrumentType(str, enum.Enum):
    STOCK = "STOCK"
    BOND = "BOND"
    CORPORATE_BOND = "CORPORATE_BOND"
    TERM_DEPOSIT = "TERM_DEPOSIT"
    FIXED_RATE_DEPOSIT = "FIXED_RATE_DEPOSIT"
    PRIVATE_EQUITY = "PRIVATE_EQUITY"
    MUTUAL_FUND = "MUTUAL_FUND"
    ETF = "ETF"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


class HoldingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"

    # Recorded by the cash collaborators, never by the trade executor
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    FEE = "FEE"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class RevaluationStatus(str, enum.Enum):
    """
    Status values for batch revaluation runs.

    State transitions:
        RUNNING → COMPLETED (no errors)
        RUNNING → PARTIAL (some holdings or portfolios failed)
        RUNNING → FAILED (the run could not load its working set)

        SKIPPED is terminal: another run was already in progress.
    """
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class RevaluationTrigger(str, enum.Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class User(Base):
    """
    Identity of a client or administrator.

    Credentials and sessions belong to the authentication service; this row
    only anchors ownership and the admin flag.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationship: One User has Many Portfolios
    portfolios: Mapped[list["Portfolio"]] = relationship(back_populates="owner")


class Portfolio(Base):
    __tablename__ = "portfolios"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    currency: Mapped[str] = mapped_column(String, default="EUR")

    # =========================================================================
    # AGGREGATES
    # =========================================================================
    # Derived from ACTIVE holdings by the portfolio aggregator, never patched
    total_value: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    total_invested: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    total_gain: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    gain_percentage: Mapped[Decimal] = mapped_column(PERCENT, default=Decimal(0))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner: Mapped["User"] = relationship(back_populates="portfolios")
    holdings: Mapped[list["Holding"]] = relationship(back_populates="portfolio")


class Instrument(Base):
    """
    Marketplace catalogue entry that clients can buy.

    For fixed-rate instruments, expected_return is the annual interest rate
    in percent and is copied onto every holding bought from it.
    """
    __tablename__ = "instruments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String)
    instrument_type: Mapped[InstrumentType] = mapped_column(Enum(InstrumentType))
    symbol: Mapped[str | None] = mapped_column(String, index=True)  # e.g. "AAPL", NULL for deposits
    currency: Mapped[str] = mapped_column(String, default="EUR")
    current_price: Mapped[Decimal] = mapped_column(MONEY)
    expected_return: Mapped[Decimal | None] = mapped_column(PERCENT, nullable=True)
    maturity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    last_price_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Holding(Base):
    """
    A user's position in one instrument within one portfolio.

    The valuation columns (current_price, total_value, total_invested,
    total_gain, gain_percentage) are always written together by the
    holding valuator. The version column is checked on every UPDATE so two
    sells racing on the same row cannot both decrement from the same quantity.
    """
    __tablename__ = "holdings"
    __table_args__ = (
        # "All ACTIVE holdings of portfolio X" is the aggregator's only query
        Index('ix_holding_portfolio_status', 'portfolio_id', 'status'),
        Index('ix_holding_status_symbol', 'status', 'symbol'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    instrument_id: Mapped[int | None] = mapped_column(ForeignKey("instruments.id"), nullable=True, index=True)

    instrument_type: Mapped[InstrumentType] = mapped_column(Enum(InstrumentType))
    name: Mapped[str] = mapped_column(String)
    symbol: Mapped[str | None] = mapped_column(String, nullable=True)

    quantity: Mapped[Decimal] = mapped_column(MONEY)
    purchase_price: Mapped[Decimal] = mapped_column(MONEY)
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Fixed-rate instruments only
    interest_rate: Mapped[Decimal | None] = mapped_column(PERCENT, nullable=True)
    maturity_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    current_price: Mapped[Decimal] = mapped_column(MONEY)
    total_value: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    total_invested: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    total_gain: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    gain_percentage: Mapped[Decimal] = mapped_column(PERCENT, default=Decimal(0))

    status: Mapped[HoldingStatus] = mapped_column(Enum(HoldingStatus), default=HoldingStatus.ACTIVE)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    portfolio: Mapped["Portfolio"] = relationship(back_populates="holdings")
    instrument: Mapped["Instrument | None"] = relationship()

    __mapper_args__ = {"version_id_col": version}


class Transaction(Base):
    """Immutable record of a cash or instrument movement."""
    __tablename__ = "transactions"
    __table_args__ = (
        Index('ix_transaction_user_created', 'user_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    portfolio_id: Mapped[int | None] = mapped_column(ForeignKey("portfolios.id"), nullable=True, index=True)
    holding_id: Mapped[int | None] = mapped_column(ForeignKey("holdings.id"), nullable=True, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))
    status: Mapped[TransactionStatus] = mapped_column(Enum(TransactionStatus), default=TransactionStatus.COMPLETED)

    # BUY: cost + fee debited; SELL: proceeds - fee credited
    amount: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String, default="EUR")
    quantity: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    fee: Mapped[Decimal] = mapped_column(MONEY, default=Decimal(0))
    realized_gain: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)  # SELL only
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class RevaluationRun(Base):
    """
    Persisted summary of one batch revaluation run.

    errors holds a list of {"scope", "id", "message"} dicts, one per
    holding or portfolio that failed during the run.
    """
    __tablename__ = "revaluation_runs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    trigger: Mapped[RevaluationTrigger] = mapped_column(Enum(RevaluationTrigger))
    status: Mapped[RevaluationStatus] = mapped_column(Enum(RevaluationStatus), default=RevaluationStatus.RUNNING)
    correlation_id: Mapped[str | None] = mapped_column(String, nullable=True)
    as_of: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    market_prices_updated: Mapped[int] = mapped_column(Integer, default=0)
    accruals_updated: Mapped[int] = mapped_column(Integer, default=0)
    portfolios_updated: Mapped[int] = mapped_column(Integer, default=0)
    instrument_prices_updated: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
