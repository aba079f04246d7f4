"""Database engine and session factory for the ledger store"""

from typing import Iterator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from gnpl_ledger.config import settings


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL gets a bounded pool (10 + 10 overflow, recycled hourly);
    SQLite (local runs and tests) is shared across threads instead.
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions, one per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
