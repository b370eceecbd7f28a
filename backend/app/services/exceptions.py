# backend/app/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The router layer is responsible for mapping these to appropriate HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InsufficientQuantityError
    │   ├── InstrumentNotTradableError
    │   └── HoldingClosedError
    ├── NotFoundError
    │   ├── PortfolioNotFoundError
    │   ├── HoldingNotFoundError
    │   └── InstrumentNotFoundError
    ├── MarketDataError
    │   ├── ProviderUnavailableError
    │   ├── TickerNotFoundError
    │   ├── RateLimitError
    │   └── QuoteUnavailableError
    ├── PersistenceError
    └── InvalidTokenError
        └── TokenExpiredError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when circuit breaker is open and blocking requests

MarketDataError and CircuitBreakerOpen never reach a trade caller: the
revaluation job treats them as "no quote" and keeps going.
"""

from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a request is well-formed but breaks a business rule.

    Examples: non-positive quantity, selling more than is held.
    These are user-correctable and never retried.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InsufficientQuantityError(ValidationError):
    """Raised when a sell asks for more units than the holding has."""

    def __init__(self, holding_id: int, requested: Decimal, available: Decimal) -> None:
        self.holding_id = holding_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient quantity in holding {holding_id}: "
            f"requested {requested}, available {available}",
            field="quantity",
        )


class InstrumentNotTradableError(ValidationError):
    """Raised when an instrument is unavailable or has no positive price."""

    def __init__(self, instrument_id: int, reason: str) -> None:
        self.instrument_id = instrument_id
        self.reason = reason
        super().__init__(
            f"Instrument {instrument_id} cannot be traded: {reason}",
            field="instrument_id",
        )


class HoldingClosedError(ValidationError):
    def __init__(self, holding_id: int) -> None:
        self.holding_id = holding_id
        super().__init__(f"Holding {holding_id} is closed", field="holding_id")


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Also raised when the resource exists but belongs to another user, so
    callers cannot probe for other users' ids.

    Attributes:
        resource_type: Type of resource (e.g., "Portfolio", "Holding")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class PortfolioNotFoundError(NotFoundError):
    """
    Raised when a portfolio cannot be found.

    Attributes:
        portfolio_id: ID of the portfolio that was not found
    """

    def __init__(self, portfolio_id: int) -> None:
        self.portfolio_id = portfolio_id
        super().__init__(
            f"Portfolio {portfolio_id} not found",
            resource_type="Portfolio",
            resource_id=portfolio_id,
        )


class HoldingNotFoundError(NotFoundError):
    def __init__(self, holding_id: int) -> None:
        self.holding_id = holding_id
        super().__init__(
            f"Holding {holding_id} not found",
            resource_type="Holding",
            resource_id=holding_id,
        )


class InstrumentNotFoundError(NotFoundError):
    def __init__(self, instrument_id: int) -> None:
        self.instrument_id = instrument_id
        super().__init__(
            f"Instrument {instrument_id} not found",
            resource_type="Instrument",
            resource_id=instrument_id,
        )


# =============================================================================
# MARKET DATA PROVIDER ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for price source failures.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when a price source is temporarily unavailable.

    Examples:
    - Network timeout
    - Server errors (500, 502, 503)

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class TickerNotFoundError(MarketDataError):
    """
    Raised when a symbol is not recognized by the provider.

    Providers translate this into "no quote" at the public boundary.
    This is NOT a retryable error.
    """

    def __init__(self, symbol: str, provider: str) -> None:
        message = f"Symbol '{symbol}' not found by {provider}"
        super().__init__(message, provider=provider)
        self.symbol = symbol


class RateLimitError(MarketDataError):
    """
    Raised when the provider's rate limit has been exceeded.

    This is a retryable error (with backoff).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class QuoteUnavailableError(MarketDataError):
    """
    Raised for a market-quoted holding with no quote when the missing
    quote policy is "fail". Recorded in the run's errors, never raised
    to a caller.
    """

    def __init__(self, symbol: str) -> None:
        super().__init__(f"No quote available for '{symbol}'")
        self.symbol = symbol


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================


class PersistenceError(ServiceError):
    """
    Raised when a write to the store fails mid-operation.

    The session has already been rolled back when this is raised, so no
    partial state from the operation is visible.

    Attributes:
        operation: Short name of the failed operation (e.g. "buy", "sell")
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Failed to persist {operation}: {reason}")


# =============================================================================
# AUTHENTICATION ERRORS
# =============================================================================


class InvalidTokenError(ServiceError):
    """Raised when a bearer token fails signature, claim or type checks."""
    pass


class TokenExpiredError(InvalidTokenError):
    pass


# =============================================================================
# CIRCUIT BREAKER (re-exported for convenience)
# =============================================================================

from app.services.circuit_breaker import CircuitBreakerOpen

__all__ = [
    # Base
    "ServiceError",
    # Validation
    "ValidationError",
    "InsufficientQuantityError",
    "InstrumentNotTradableError",
    "HoldingClosedError",
    # Not Found
    "NotFoundError",
    "PortfolioNotFoundError",
    "HoldingNotFoundError",
    "InstrumentNotFoundError",
    # Market Data
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "QuoteUnavailableError",
    # Persistence
    "PersistenceError",
    # Authentication
    "InvalidTokenError",
    "TokenExpiredError",
    # Circuit Breaker
    "CircuitBreakerOpen",
]
