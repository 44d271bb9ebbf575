"""Database session management"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import get_settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with dialect-appropriate pool settings"""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(database_url, pool_size=5, max_overflow=10, echo=echo)


_settings = get_settings()
engine = build_engine(_settings.database_url, echo=_settings.database_echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_sync():
    """Get database session for synchronous code (context manager)"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
