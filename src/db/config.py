"""
Database configuration for the Holded purchase sync service.

Loads environment variables and lazily creates the SQLAlchemy engine and
session factory, so importing the package never needs a database.
"""

import os

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker

# Load environment variables from .env file
load_dotenv()


class DatabaseConfig:
    """Database configuration singleton."""

    _engine: Engine | None = None
    _session_factory: sessionmaker | None = None

    @classmethod
    def get_database_url(cls) -> str:
        """Get database URL from environment variables."""
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise ValueError(
                "DATABASE_URL environment variable is required. "
                "Copy .env.example to .env and set your Supabase connection string."
            )
        return database_url

    @classmethod
    def get_engine(cls) -> Engine:
        """Get SQLAlchemy engine (singleton)."""
        if cls._engine is None:
            cls._engine = create_engine(
                cls.get_database_url(),
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=False,
            )
        return cls._engine

    @classmethod
    def get_session_factory(cls) -> sessionmaker:
        """Get session factory."""
        if cls._session_factory is None:
            cls._session_factory = sessionmaker(
                bind=cls.get_engine(),
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
            )
        return cls._session_factory

    @classmethod
    def configure(cls, engine: Engine) -> None:
        """Bind to an existing engine (tests, embedded use)."""
        cls._engine = engine
        cls._session_factory = None
