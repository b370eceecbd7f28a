# backend/app/utils/__init__.py
"""
Cross-cutting utilities:
- logging: Logging setup with correlation ID support
- context: Correlation ID storage for requests and revaluation runs

Usage:
    from app.utils import setup_logging
    from app.utils import get_correlation_id, correlation_scope
"""

from app.utils.context import (
    get_correlation_id,
    set_correlation_id,
    reset_correlation_id,
    clear_correlation_id,
    correlation_scope,
)
from app.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "reset_correlation_id",
    "clear_correlation_id",
    "correlation_scope",
]
