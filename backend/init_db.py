#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script for local development.

Creates every table from the ORM models. Production schemas are managed
by the Alembic migrations under alembic/versions.

This script can be run from any directory:
    python backend/init_db.py
    cd backend && python init_db.py
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so 'app' package is importable
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from app.database import engine
from app.models import Base


def init_db() -> list[str]:
    """Create all valuation tables and return their names."""
    print(f"Creating tables on {engine.url.render_as_string(hide_password=True)}...")
    Base.metadata.create_all(bind=engine)
    tables = sorted(Base.metadata.tables)
    print(f"Tables ready: {', '.join(tables)}")
    return tables


if __name__ == "__main__":
    init_db()
