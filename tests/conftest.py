"""
Shared fixtures: an in-memory invoices store and fake Holded clients.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.config.loader import HoldedCompanyConfig
from src.db.models import Base
from tests.fakes import FakeHoldedClient


@pytest.fixture
def company():
    return HoldedCompanyConfig(id="solucions", api_key="test-key")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def acme_client():
    """Company 'solucions' with one overdue purchase from Acme and Acme's contact card."""
    return FakeHoldedClient(
        "solucions",
        purchases=[
            {
                "id": "p1",
                "status": 2,
                "dueDate": "2023-01-01",
                "contact": {"name": "Acme"},
                "total": 121.0,
                "tax": 21.0,
                "subtotal": 100.0,
            }
        ],
        contacts=[{"id": "c1", "name": "Acme", "iban": "ES0012345678901234567890"}],
    )
