"""
Database connection and session management.
"""
from __future__ import annotations

import logging
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import settings
from app.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Return the shared engine, creating it on first use.

    A missing DATABASE_URL is only reported at startup; requests that need
    the database fail here instead.
    """
    global _engine
    if _engine is None:
        if not settings.database_url:
            raise PersistenceError("DATABASE_URL is not configured.")
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            echo=False,
        )
        SessionLocal.configure(bind=_engine)
    return _engine


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting a database session.
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database_connection() -> bool:
    """
    Return True when the database connection is healthy.
    """
    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, PersistenceError):
        return False


def database_health() -> dict[str, Any]:
    """
    Return structured database health details.
    """
    try:
        with get_engine().connect() as connection:
            result = connection.execute(
                text(
                    "SELECT current_database() AS database_name, "
                    "current_user AS database_user, "
                    "version() AS server_version"
                )
            ).mappings().one()

        return {
            "ok": True,
            "database": str(result["database_name"]),
            "user": str(result["database_user"]),
            "server_version": str(result["server_version"]),
        }
    except PersistenceError as exc:
        return {"ok": False, "error": exc.message}
    except SQLAlchemyError as exc:
        logger.error(f"Database health check failed: {str(exc)}")
        return {
            "ok": False,
            "error": str(exc),
        }
