"""Database package for the daily snapshot store"""

from database.base import Base
from database.session import SessionLocal, build_engine, engine, get_db_sync

__all__ = ["Base", "build_engine", "get_db_sync", "SessionLocal", "engine"]
