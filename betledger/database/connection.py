"""
Database Connection Configuration.

Provides the SQLAlchemy engine, session factory and the FastAPI
session dependency.

Features:
    - Engine built from ``settings.DATABASE_URL``
    - SQLite gets ``check_same_thread=False`` for use behind FastAPI
    - Pre-ping to detect stale connections on server databases
"""

import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from betledger.core.config import settings
from betledger.database.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine.

    Args:
        database_url: Connection string. If None, reads from settings.
        echo: Whether to log SQL statements (for debugging).

    Example:
        >>> engine = create_db_engine("sqlite:///./betledger.db")
        >>> with engine.connect() as conn:
        ...     result = conn.execute(text("SELECT 1"))
    """
    if database_url is None:
        database_url = settings.DATABASE_URL

    logger.info(f"Creating database engine for {database_url.split('@')[-1]}")

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False}
        )

        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured")


# ============================================================================
# Session Factory
# ============================================================================

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    """Get or create the database engine singleton."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(echo=settings.DEBUG)
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory singleton."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI to get DB session.

    Repository write methods commit their own work; anything left
    uncommitted when a request fails is rolled back here.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception as e:
        session.rollback()
        logger.error(f"Database session rollback: {e}")
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    """
    Dispose of all pooled connections.

    Call this during application shutdown or when reconfiguring.
    """
    global _engine, _session_factory

    if _engine:
        logger.info("Disposing database engine")
        _engine.dispose()
        _engine = None
        _session_factory = None
