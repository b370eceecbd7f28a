# backend/app/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

Correlation ID sources (in order of precedence):
1. X-Correlation-ID header (from client or upstream service)
2. X-Request-ID header
3. Generated UUID

The ID is stored in context for the duration of the request and echoed
back in the X-Correlation-ID response header.

Usage:
    app.add_middleware(CorrelationIdMiddleware)
"""

import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.utils.context import new_correlation_id, reset_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Sets the correlation ID for each request and returns it in the response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        correlation_id = (
            request.headers.get(CORRELATION_ID_HEADER)
            or request.headers.get(REQUEST_ID_HEADER)
            or new_correlation_id()
        )

        token = set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            reset_correlation_id(token)
