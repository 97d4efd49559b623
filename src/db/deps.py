"""
Database dependency management for the Holded purchase sync service.

Provides context managers for database session handling.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from .config import DatabaseConfig


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager that yields a database session and ensures proper cleanup.

    Commits on success, rolls back on any exception and always closes.

    Usage:
        with get_session() as session:
            result = sync_documents_with_database(session, "solucions")
    """
    session = DatabaseConfig.get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency wrapping ``get_session``."""
    with get_session() as session:
        yield session
