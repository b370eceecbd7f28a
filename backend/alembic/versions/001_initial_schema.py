"""Initial schema baseline

This migration creates the complete database schema for the valuation engine.

Tables:
    - users: Identity anchors (credentials live in the auth service)
    - portfolios: Client portfolios with cached aggregate totals
    - instruments: Marketplace catalogue
    - holdings: Positions with cached valuation and optimistic version
    - transactions: Buy/sell records
    - revaluation_runs: One row per batch revaluation run

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(28, 10)
PERCENT = sa.Numeric(18, 8)

INSTRUMENT_TYPES = (
    'STOCK', 'BOND', 'CORPORATE_BOND', 'TERM_DEPOSIT', 'FIXED_RATE_DEPOSIT',
    'PRIVATE_EQUITY', 'MUTUAL_FUND', 'ETF', 'CRYPTO', 'OTHER',
)


def upgrade() -> None:
    # ==========================================================================
    # USERS
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # PORTFOLIOS
    # ==========================================================================
    op.create_table(
        'portfolios',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('currency', sa.String(), nullable=False, server_default='EUR'),
        sa.Column('total_value', MONEY, nullable=False, server_default='0'),
        sa.Column('total_invested', MONEY, nullable=False, server_default='0'),
        sa.Column('total_gain', MONEY, nullable=False, server_default='0'),
        sa.Column('gain_percentage', PERCENT, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # INSTRUMENTS
    # ==========================================================================
    op.create_table(
        'instruments',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('instrument_type', sa.Enum(*INSTRUMENT_TYPES, name='instrumenttype'), nullable=False),
        sa.Column('symbol', sa.String(), nullable=True, index=True),
        sa.Column('currency', sa.String(), nullable=False, server_default='EUR'),
        sa.Column('current_price', MONEY, nullable=False),
        sa.Column('expected_return', PERCENT, nullable=True),
        sa.Column('maturity_date', sa.Date(), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_price_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # HOLDINGS
    # ==========================================================================
    op.create_table(
        'holdings',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('portfolio_id', sa.Integer(), sa.ForeignKey('portfolios.id'), nullable=False, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('instrument_id', sa.Integer(), sa.ForeignKey('instruments.id'), nullable=True, index=True),
        sa.Column('instrument_type', sa.Enum(*INSTRUMENT_TYPES, name='instrumenttype', create_type=False), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('symbol', sa.String(), nullable=True),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('purchase_price', MONEY, nullable=False),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('interest_rate', PERCENT, nullable=True),
        sa.Column('maturity_date', sa.Date(), nullable=True),
        sa.Column('current_price', MONEY, nullable=False),
        sa.Column('total_value', MONEY, nullable=False, server_default='0'),
        sa.Column('total_invested', MONEY, nullable=False, server_default='0'),
        sa.Column('total_gain', MONEY, nullable=False, server_default='0'),
        sa.Column('gain_percentage', PERCENT, nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('ACTIVE', 'CLOSED', name='holdingstatus'), nullable=False, server_default='ACTIVE'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_holding_portfolio_status', 'holdings', ['portfolio_id', 'status'])
    op.create_index('ix_holding_status_symbol', 'holdings', ['status', 'symbol'])

    # ==========================================================================
    # TRANSACTIONS
    # ==========================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('portfolio_id', sa.Integer(), sa.ForeignKey('portfolios.id'), nullable=True, index=True),
        sa.Column('holding_id', sa.Integer(), sa.ForeignKey('holdings.id'), nullable=True, index=True),
        sa.Column('transaction_type', sa.Enum(
            'BUY', 'SELL', 'DEPOSIT', 'WITHDRAWAL', 'DIVIDEND', 'INTEREST', 'FEE',
            name='transactiontype'), nullable=False),
        sa.Column('status', sa.Enum(
            'PENDING', 'COMPLETED', 'FAILED', 'CANCELLED',
            name='transactionstatus'), nullable=False, server_default='COMPLETED'),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(), nullable=False, server_default='EUR'),
        sa.Column('quantity', MONEY, nullable=True),
        sa.Column('unit_price', MONEY, nullable=True),
        sa.Column('fee', MONEY, nullable=False, server_default='0'),
        sa.Column('realized_gain', MONEY, nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_transaction_user_created', 'transactions', ['user_id', 'created_at'])

    # ==========================================================================
    # REVALUATION RUNS
    # ==========================================================================
    op.create_table(
        'revaluation_runs',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('trigger', sa.Enum('SCHEDULED', 'MANUAL', name='revaluationtrigger'), nullable=False),
        sa.Column('status', sa.Enum(
            'RUNNING', 'COMPLETED', 'PARTIAL', 'FAILED', 'SKIPPED',
            name='revaluationstatus'), nullable=False),
        sa.Column('correlation_id', sa.String(), nullable=True),
        sa.Column('as_of', sa.DateTime(timezone=True), nullable=False),
        sa.Column('market_prices_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accruals_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('portfolios_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('instrument_prices_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('revaluation_runs')
    op.drop_index('ix_transaction_user_created', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_holding_status_symbol', table_name='holdings')
    op.drop_index('ix_holding_portfolio_status', table_name='holdings')
    op.drop_table('holdings')
    op.drop_table('instruments')
    op.drop_table('portfolios')
    op.drop_table('users')

    for enum_name in (
        'revaluationstatus', 'revaluationtrigger', 'transactionstatus',
        'transactiontype', 'holdingstatus', 'instrumenttype',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
