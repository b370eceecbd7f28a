# backend/app/services/market_data/yahoo.py
"""
Yahoo Finance price source.

Reads the latest daily close from yfinance. Free data, possibly delayed
by 15-20 minutes, which is fine for a once-a-day revaluation.

Every network call runs inside a CircuitBreaker. During a batch run the
same provider is asked for every distinct symbol; if Yahoo is down the
breaker opens after a few failures and the remaining symbols are
skipped instead of each waiting out its timeout.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import pandas as pd
import yfinance as yf

from app.services.circuit_breaker import CircuitBreaker
from app.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    MONEY_QUANTUM,
    QUOTE_HISTORY_PERIOD,
    ROUNDING,
)
from app.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
)
from app.services.market_data.base import PriceSource, Quote, normalize_symbol

logger = logging.getLogger(__name__)


class YahooQuoteProvider(PriceSource):
    """
    Yahoo Finance implementation of PriceSource.

    Configuration:
        timeout: Per-request timeout in seconds, passed to yfinance
        breaker: Optional CircuitBreaker (one is created if omitted)

    Retry Behavior (inherited from PriceSource):
        - Retries ProviderUnavailableError and RateLimitError
        - Unknown symbols return None, no retry

    Example:
        provider = YahooQuoteProvider(timeout=10)
        quote = provider.get_quote("AAPL")
        if quote:
            print(quote.price, quote.as_of)
    """

    def __init__(self, timeout: int = 10, breaker: CircuitBreaker | None = None) -> None:
        self._timeout = timeout
        self._breaker = breaker or CircuitBreaker(
            name="yahoo-quotes",
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
            # An unknown symbol says nothing about the feed's health
            excluded_exceptions=(TickerNotFoundError,),
        )
        logger.info(f"YahooQuoteProvider initialized (timeout={timeout}s)")

    @property
    def name(self) -> str:
        return "yahoo"

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    def is_available(self) -> bool:
        return not self._breaker.is_open

    def get_quote(self, symbol: str) -> Quote | None:
        symbol = normalize_symbol(symbol)
        if not symbol:
            return None

        try:
            return self._execute_with_retry(self._guarded_fetch, symbol)
        except TickerNotFoundError:
            logger.info(f"Yahoo has no quote for {symbol}")
            return None

    def _guarded_fetch(self, symbol: str) -> Quote:
        with self._breaker:
            return self._fetch_quote(symbol)

    def _fetch_quote(self, symbol: str) -> Quote:
        """Internal fetch, called by the retry wrapper inside the breaker."""
        logger.debug(f"Fetching quote for {symbol}")

        try:
            df = yf.Ticker(symbol).history(
                period=QUOTE_HISTORY_PERIOD,
                interval="1d",
                auto_adjust=False,
                timeout=self._timeout,
            )
        except Exception as e:
            raise self._classify_error(symbol, e)

        if df is None or df.empty or "Close" not in df:
            raise TickerNotFoundError(symbol=symbol, provider=self.name)

        closes = df["Close"].dropna()
        closes = closes[closes > 0]
        if closes.empty:
            raise TickerNotFoundError(symbol=symbol, provider=self.name)

        price = self._to_decimal(closes.iloc[-1])
        if price is None:
            raise TickerNotFoundError(symbol=symbol, provider=self.name)

        return Quote(symbol=symbol, price=price, as_of=self._to_datetime(closes.index[-1]))

    def _classify_error(self, symbol: str, error: Exception) -> Exception:
        error_str = str(error).lower()

        if "not found" in error_str or "delisted" in error_str or "no data" in error_str:
            return TickerNotFoundError(symbol=symbol, provider=self.name)
        if "rate limit" in error_str or "too many requests" in error_str:
            return RateLimitError(provider=self.name)

        logger.error(f"Yahoo Finance error for {symbol}: {error}")
        return ProviderUnavailableError(provider=self.name, reason=str(error))

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a pandas scalar to Decimal, None for NaN."""
        if value is None or pd.isna(value):
            return None
        try:
            return Decimal(str(value)).quantize(MONEY_QUANTUM, rounding=ROUNDING)
        except (InvalidOperation, ValueError):
            return None

    @staticmethod
    def _to_datetime(index_value: Any) -> datetime:
        if isinstance(index_value, pd.Timestamp):
            as_of = index_value.to_pydatetime()
        elif isinstance(index_value, datetime):
            as_of = index_value
        else:
            return datetime.now(timezone.utc)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        return as_of.astimezone(timezone.utc)
