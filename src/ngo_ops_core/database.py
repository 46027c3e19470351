"""Database connection and session management."""
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Create the shared engine on first use."""
    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        return create_engine(settings.database_url, connect_args={"check_same_thread": False})

    # Conservative pool settings for a hosted Postgres in session mode
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,          # Verify connections before using
        pool_size=3,                 # Base pool of 3 connections
        max_overflow=7,              # Allow up to 10 total connections
        pool_recycle=3600,           # Recycle connections every hour
        pool_timeout=30,             # Timeout after 30 seconds
    )


# Session factory, bound per session so the engine stays lazy
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal(bind=get_engine())
    try:
        yield db
    finally:
        db.close()
