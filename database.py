"""
Database connection and session management for AdherenceHub
"""

import logging
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Generator, Optional

from config import settings
from exceptions import DependencyError


logger = logging.getLogger(__name__)


# Create SQLAlchemy engine
if settings.DATABASE_URL.startswith("sqlite"):
    # SQLite specific configuration
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=settings.DATABASE_ECHO
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    # PostgreSQL or other databases
    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True
    )

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)

# Base class for ORM models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get database session.
    Automatically closes session after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database session.
    Use this for background tasks or non-FastAPI contexts.

    Usage:
        with get_db_context() as db:
            db.query(MedicationSchedule).all()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def persistence_guard(session: Session, operation: str) -> Generator[Session, None, None]:
    """
    Translate persistence failures into DependencyError.

    The session is rolled back so the caller can keep using it.
    Domain errors raised inside the block pass through untouched.

    Usage:
        with persistence_guard(db, "mark_taken"):
            db.add(record)
            db.commit()
    """
    try:
        yield session
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Persistence failure during {operation}: {e}")
        raise DependencyError(f"Persistence failure during {operation}", operation=operation) from e


def init_db() -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    # Import models to register them with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {settings.DATABASE_URL}")


class DatabaseHealthCheck:
    """Database health check utilities"""

    @staticmethod
    def is_connected(bind: Optional[object] = None) -> bool:
        """Check if database is connected"""
        try:
            with (bind or engine).connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False


# Export commonly used items
__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "get_db",
    "get_db_context",
    "persistence_guard",
    "init_db",
    "DatabaseHealthCheck"
]
