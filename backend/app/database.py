# backend/app/database.py
"""
Database connection and session management.

This module configures SQLAlchemy with:
- Connection pooling for production performance
- Environment-aware settings (test vs production)
- Request-scoped sessions for routers (get_db)
- Self-managed sessions for background jobs (session_scope)

Pool Configuration (configurable via environment variables):
- DB_POOL_SIZE: Persistent connections (default: 5)
- DB_POOL_MAX_OVERFLOW: Burst capacity (default: 10)
- DB_POOL_RECYCLE: Connection lifetime (default: 3600s)
- DB_POOL_PRE_PING: Health checks (default: True)
"""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool

from .config import settings

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    """
    Create SQLAlchemy engine with environment-appropriate configuration.

    Configuration varies by database type:
    - SQLite (test/local only): StaticPool so the in-memory database is shared
      between the request threadpool and the scheduler thread
    - PostgreSQL: QueuePool with configurable connection pooling
    """
    if settings.is_sqlite:
        logger.info("Configuring SQLite database")
        return create_engine(
            settings.database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=settings.debug,
        )

    logger.info(
        f"Configuring PostgreSQL database pool: "
        f"size={settings.db_pool_size}, "
        f"max_overflow={settings.db_pool_max_overflow}, "
        f"recycle={settings.db_pool_recycle}s, "
        f"pre_ping={settings.db_pool_pre_ping}"
    )

    return create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_timeout=30,
        echo=settings.debug,
    )


engine = _create_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Yields:
        Session: A SQLAlchemy database session that auto-closes after use.

    Usage:
        @router.post("/portfolios/{portfolio_id}/buy")
        def buy(portfolio_id: int, db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """
    Open a session outside of a request, e.g. for a scheduler firing.

    The caller owns commits; anything left uncommitted is rolled back when
    the block exits with an exception.
    """
    db = factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
