# backend/app/schemas/errors.py
"""
Pydantic schemas for error responses.

Every error leaves the API in one of these shapes, produced by the
global exception handlers in main.py.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """
    Standard error response format.

    Example:
        {"error": "InsufficientQuantityError",
         "message": "Insufficient quantity in holding 7: requested 11, available 10",
         "details": {"field": "quantity"}}
    """

    error: str = Field(
        ...,
        description="Exception class name (e.g., 'HoldingNotFoundError')"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error context (optional)"
    )


class ValidationErrorDetail(BaseModel):
    """Request body / parameter validation failure (422)."""

    error: str = Field(default="RequestValidationError")
    message: str = Field(default="Request validation failed")
    details: list[dict[str, Any]] = Field(
        ...,
        description="One entry per invalid field"
    )
