# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.

PostgreSQL is the production database. SQLite is supported for local runs
and tests; SQLite connections start every transaction with BEGIN IMMEDIATE
so that concurrent writers are serialized the same way the row locks
serialize them on PostgreSQL.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL, DB_LOCK_TIMEOUT_SECONDS, DB_STATEMENT_TIMEOUT_MS
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import ConflictError, InternalError, SchedulingError

logger = logging.getLogger(__name__)


def build_engine(database_url: str, **kwargs: Any) -> Engine:
    """
    Create an engine with bounded lock and statement timeouts.

    Args:
        database_url: SQLAlchemy database URL
        **kwargs: Extra keyword arguments passed to create_engine

    Returns:
        Configured SQLAlchemy engine
    """
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": DB_LOCK_TIMEOUT_SECONDS},
            echo=False,
            future=True,
            **kwargs,
        )

        # Let SQLAlchemy emit BEGIN itself so we can make it IMMEDIATE
        @event.listens_for(sqlite_engine, "connect")  # type: ignore
        def _sqlite_connect(dbapi_connection, connection_record):  # type: ignore
            dbapi_connection.isolation_level = None

        @event.listens_for(sqlite_engine, "begin")  # type: ignore
        def _sqlite_begin(conn):  # type: ignore
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return sqlite_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=DB_POOL_RECYCLE_SECONDS,
        echo=False,
        future=True,
        connect_args={
            "options": (
                f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS} "
                f"-c lock_timeout={DB_LOCK_TIMEOUT_SECONDS * 1000}"
            )
        },
        **kwargs,
    )


engine = build_engine(DATABASE_URL)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Set created_at and updated_at using Dhaka time
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import dhaka_now
    now = dhaka_now()
    for column_name in ("created_at", "updated_at"):
        if column_name in mapper.columns and getattr(target, column_name, None) is None:  # type: ignore
            setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    from utils.datetime_utils import dhaka_now
    if "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", dhaka_now())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Handles cleanup even if an exception occurs during request processing.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except (HTTPException, SchedulingError):
        # Expected business outcomes, not worth an error log
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def atomic(db: Session, operation: str) -> Generator[Session, None, None]:
    """
    Run a unit of work and commit it, translating persistence failures.

    Unique index violations and lock/statement timeouts become ConflictError
    (the caller may retry). Any other database failure becomes InternalError.
    Domain errors raised inside the block roll back and propagate unchanged.

    Args:
        db: Session to commit
        operation: Short description used in log and error messages
    """
    try:
        yield db
        db.commit()
    except SchedulingError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity conflict during {operation}: {e.orig}")
        raise ConflictError(f"Conflicting update during {operation}, please retry") from e
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Database busy during {operation}: {e.orig}")
        raise ConflictError(f"Database is busy, please retry {operation}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database error during {operation}: {e}")
        raise InternalError(f"Failed to {operation}") from e
