# backend/app/utils/context.py
"""
Context storage for the correlation ID.

Every log line carries a correlation ID so that one request, or one
revaluation run, can be followed through the logs:
- HTTP requests: taken from X-Correlation-ID / X-Request-ID or generated
- Revaluation runs: "revaluation-<uuid>", set for the duration of the run

contextvars keeps the value isolated per request task and per thread, so
the scheduler thread and the request threadpool never see each other's ID.

Usage:
    from app.utils.context import correlation_scope, get_correlation_id

    with correlation_scope("revaluation") as run_id:
        logger.info("starting")  # logged with run_id
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Correlation ID of the current request or job, or None."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> Token:
    """
    Set the correlation ID.

    Returns:
        Token to pass to reset_correlation_id() to restore the previous value
    """
    return _correlation_id_var.set(correlation_id)


def reset_correlation_id(token: Token) -> None:
    _correlation_id_var.reset(token)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


def new_correlation_id(prefix: str | None = None) -> str:
    value = str(uuid.uuid4())
    return f"{prefix}-{value}" if prefix else value


@contextmanager
def correlation_scope(prefix: str | None = None) -> Iterator[str]:
    """
    Run a block under a freshly generated correlation ID.

    The previous ID (if any) is restored on exit.
    """
    correlation_id = new_correlation_id(prefix)
    token = set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        reset_correlation_id(token)
