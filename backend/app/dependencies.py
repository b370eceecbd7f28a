# backend/app/dependencies.py
"""
Dependency injection module for FastAPI services.

This module provides singleton service instances that are shared across
all requests. The price source in particular must be shared so that its
circuit breaker sees every call, whether it comes from the scheduler or
from the admin endpoint.

Services are lazily initialized on first use to avoid import-time side effects.

Usage in routers:
    from app.dependencies import get_trade_executor, get_current_user

    @router.post("/{portfolio_id}/buy")
    def buy(
        executor: TradeExecutor = Depends(get_trade_executor),
        current_user: User = Depends(get_current_user),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models import User
from app.services.auth import JWTHandler
from app.services.exceptions import InvalidTokenError, TokenExpiredError
from app.services.holding_service import HoldingService
from app.services.market_data import YahooQuoteProvider
from app.services.revaluation import RevaluationService
from app.services.trade_service import TradeExecutor

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for JWT authentication
_bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_price_source (no deps)
# 2. get_trade_executor, get_holding_service (no deps)
# 3. get_revaluation_service (depends on price source)


@lru_cache(maxsize=1)
def get_price_source() -> YahooQuoteProvider:
    """
    Get the singleton price source.

    Shares the provider (and its circuit breaker) across the scheduler
    and every request.
    """
    logger.debug("Initializing singleton YahooQuoteProvider")
    return YahooQuoteProvider(timeout=settings.quote_timeout_seconds)


@lru_cache(maxsize=1)
def get_trade_executor() -> TradeExecutor:
    logger.debug("Initializing singleton TradeExecutor")
    return TradeExecutor(fee_rate=settings.trade_fee_rate)


@lru_cache(maxsize=1)
def get_holding_service() -> HoldingService:
    logger.debug("Initializing singleton HoldingService")
    return HoldingService()


@lru_cache(maxsize=1)
def get_revaluation_service() -> RevaluationService:
    """Get the singleton RevaluationService wired to the shared price source."""
    logger.debug("Initializing singleton RevaluationService")
    return RevaluationService(
        price_source=get_price_source(),
        missing_quote_policy=settings.missing_quote_policy,
    )


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """
    Dependency that extracts and validates the current user from JWT.

    Usage:
        @router.get("/protected")
        def protected_endpoint(current_user: User = Depends(get_current_user)):
            return {"user_id": current_user.id}

    Raises:
        HTTPException 401: If no token provided or token is invalid/expired
        HTTPException 401: If user not found or inactive
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = JWTHandler.validate_access_token(credentials.credentials)
    except TokenExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.get(User, claims.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def get_admin_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Dependency for administrator-only endpoints.

    Raises:
        HTTPException 403: If the caller is not an administrator
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator privileges required",
        )
    return current_user


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """
    Clear all service caches.

    Useful for testing or when you need to reset state.
    """
    get_price_source.cache_clear()
    get_trade_executor.cache_clear()
    get_holding_service.cache_clear()
    get_revaluation_service.cache_clear()
    logger.info("Cleared all service singleton caches")
