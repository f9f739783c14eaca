"""
Database engine and session management for Baht Ledger.
SQLModel over SQLite by default; any SQLAlchemy URL works.

File-backed SQLite runs in Write-Ahead Logging (WAL) mode so the scheduled
refresh can write the price cache while the app reads it. In-memory SQLite
(used by the tests) shares a single connection across sessions.
"""

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")

# Global engine instance
_engine: Optional[Engine] = None


def _engine_options(database_url: str) -> dict:
    if not database_url.startswith("sqlite"):
        return {}
    options = {"connect_args": {"check_same_thread": False}}  # Sessions are used from worker threads
    if database_url in IN_MEMORY_URLS:
        options["poolclass"] = StaticPool
    return options


def get_engine() -> Engine:
    """Get or create the engine for settings.database_url."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            echo=settings.db_echo,
            **_engine_options(settings.database_url)
        )
        if settings.database_url.startswith("sqlite") and settings.database_url not in IN_MEMORY_URLS:
            _enable_wal_mode(_engine)
    return _engine


def _enable_wal_mode(engine: Engine):
    """Switch a file-backed SQLite database to WAL with a busy timeout."""
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            # Wait up to 5 seconds for a concurrent writer
            conn.exec_driver_sql("PRAGMA busy_timeout=5000")
            logger.info("SQLite WAL mode enabled")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def reset_engine():
    """Dispose of the current engine so the next call rebuilds it from settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db():
    """Create the portfolio, transactions and price_cache tables if missing."""
    from models import Portfolio, Transaction, PriceCacheEntry  # noqa: F401

    SQLModel.metadata.create_all(get_engine())
    logger.info("Database initialized")


def get_session() -> Session:
    """Get a new database session."""
    return Session(get_engine())
