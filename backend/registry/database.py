"""
Database connection and session management module.

Uses SQLAlchemy for ORM operations. Supports PostgreSQL (production/Docker)
and SQLite (local development fallback).
Provides session factory and dependency injection for FastAPI routes.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

# Read database URL from environment
# Fallback to SQLite for local development when PostgreSQL is not available
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./trainer_registry.db"
)

# SQLite does not support pool_size, max_overflow, or pool_pre_ping
engine_kwargs = {"echo": False}

if DATABASE_URL.startswith("postgresql"):
    engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
    })
elif DATABASE_URL.startswith("sqlite"):
    # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    Yields a session and closes it after the request completes, even if
    the handler raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """
    Create all database tables directly (used for SQLite local dev).
    For PostgreSQL, use Alembic migrations instead.
    """
    Base.metadata.create_all(bind=engine)


# Markers that PostgreSQL / SQLite put in driver messages
_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefinedtable", "schema cache")
_UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate key", "unique violation")


def _driver_message(exc) -> str:
    orig = getattr(exc, "orig", None)
    return "{} {}".format(exc, orig if orig is not None else "").lower()


def is_missing_table_error(exc) -> bool:
    """True when a database error says the backing table/schema is absent."""
    return any(marker in _driver_message(exc) for marker in _MISSING_TABLE_MARKERS)


def is_unique_violation(exc) -> bool:
    """True for IntegrityErrors caused by a uniqueness constraint (SQLSTATE 23505)."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return any(marker in _driver_message(exc) for marker in _UNIQUE_VIOLATION_MARKERS)
