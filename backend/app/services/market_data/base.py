# backend/app/services/market_data/base.py
"""
Abstract interface for price sources.

The revaluation job and the instrument catalogue refresh only need the
latest price per symbol, so the contract is deliberately small:

    get_quote(symbol)    -> Quote | None
    get_quotes(symbols)  -> dict[symbol, Quote]

An unknown symbol is never an error at this boundary: get_quote returns
None and get_quotes leaves the symbol out of the result. Transient feed
failures (ProviderUnavailableError, RateLimitError) are retried with
exponential backoff before they surface.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TypeVar, Callable, Any

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from app.services.circuit_breaker import CircuitBreakerOpen
from app.services.exceptions import (
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """
    Latest known price for a symbol.

    Attributes:
        symbol: Upper-case trading symbol (e.g., "AAPL")
        price: Last price, always positive
        as_of: When the price was observed (timezone-aware)
    """

    symbol: str
    price: Decimal
    as_of: datetime

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("symbol is required")
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class PriceSource(ABC):
    """
    Abstract base class for price sources.

    Retry Behavior:
        `_execute_with_retry` retries ProviderUnavailableError and
        RateLimitError with exponential backoff. Subclasses tune it with:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)

    CircuitBreakerOpen is never retried.
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name used in logs and errors (e.g., "yahoo")."""
        pass

    @abstractmethod
    def get_quote(self, symbol: str) -> Quote | None:
        """
        Fetch the latest quote for one symbol.

        Returns:
            Quote, or None if the symbol is unknown or has no recent price

        Raises:
            ProviderUnavailableError: Feed unreachable after retries
            RateLimitError: Feed keeps rejecting us after retries
            CircuitBreakerOpen: Feed recently failed repeatedly
        """
        pass

    def get_quotes(self, symbols: Iterable[str]) -> dict[str, Quote]:
        """
        Fetch quotes for several symbols.

        Symbols that fail individually are logged and left out. Once the
        breaker opens, the remaining symbols are skipped since every call
        would be rejected anyway.

        Returns:
            Dict mapping upper-case symbol to Quote
        """
        quotes: dict[str, Quote] = {}
        unique = sorted({normalize_symbol(s) for s in symbols if s and s.strip()})

        for index, symbol in enumerate(unique):
            try:
                quote = self.get_quote(symbol)
            except CircuitBreakerOpen as e:
                logger.warning(
                    f"{self.name}: {e}; skipping {len(unique) - index} remaining symbols"
                )
                break
            except MarketDataError as e:
                logger.warning(f"{self.name}: no quote for {symbol}: {e}")
                continue

            if quote is not None:
                quotes[symbol] = quote

        logger.info(f"{self.name}: fetched {len(quotes)}/{len(unique)} quotes")
        return quotes

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a function with retry logic for transient failures.

        Raises:
            The last exception if all retries fail
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()

    def is_available(self) -> bool:
        """Whether the source is currently accepting calls."""
        return True
