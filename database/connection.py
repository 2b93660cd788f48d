"""
Database connection utilities
"""

import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from service.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, timeout_seconds: float = 5.0, echo: bool = False) -> Engine:
    """
    Create an engine with bounded waits.

    Storage calls fail fast instead of spinning: SQLite waits at most
    `timeout_seconds` for a write lock, PostgreSQL bounds both the connect
    and each statement.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": timeout_seconds, "check_same_thread": False},
        )

    connect_args = {}
    if database_url.startswith("postgresql"):
        connect_args = {
            "connect_timeout": int(timeout_seconds),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,  # Test connections before using them
        pool_recycle=3600,   # Recycle connections after 1 hour
        pool_size=5,
        max_overflow=10,
        pool_timeout=timeout_seconds,
        connect_args=connect_args,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


_settings = get_settings()
engine = build_engine(_settings.database_url, _settings.database_timeout_seconds)
SessionLocal = build_session_factory(engine)


def init_database(bind: Optional[Engine] = None) -> None:
    """Create all tables."""
    from database.models import Base

    Base.metadata.create_all(bind or engine)
    logger.info("Database tables created")


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None):
    """Get database session with automatic commit/rollback."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
