"""
Tests for the caller-facing service and the HTTP API.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.adapters.holded import HoldedAuthError
from src.config.loader import ConfigurationError, HoldedCompanyConfig
from src.db.config import DatabaseConfig
from src.db.deps import get_db
from src.holded.service import HoldedPurchasesService, UnknownCompanyError
from src.holded.sync import SyncSettings, single_flight
from src.server import app, get_service, sync_runs_total
from tests.fakes import FakeHoldedClient

PAST = "2023-01-01"
FUTURE = "2999-01-01"


@pytest.fixture
def fake_clients(acme_client):
    menjar = FakeHoldedClient(
        "menjar",
        purchases=[
            {"id": "m1", "status": 0, "dueDate": PAST, "contact": {"id": "h1", "name": "L'Hort"}},
            {"id": "m2", "status": 2, "dueDate": FUTURE, "contact": {"name": "Idoni"}},
            {"id": "m3", "status": 1, "dueDate": PAST, "contact": {"name": "Idoni"}},
        ],
        contacts=[{"id": "h1", "name": "L'Hort", "bankAccount": "ES77", "mobile": "600"}],
    )
    return {"solucions": acme_client, "menjar": menjar}


@pytest.fixture
def service(fake_clients):
    companies = {
        company_id: HoldedCompanyConfig(id=company_id, api_key=f"key-{company_id}")
        for company_id in fake_clients
    }
    return HoldedPurchasesService(
        companies,
        settings=SyncSettings(page_size=10),
        client_factory=lambda company, **options: fake_clients[company.id],
    )


class TestHoldedPurchasesService:
    """Caller-facing operations."""

    def test_requires_companies(self):
        with pytest.raises(ConfigurationError):
            HoldedPurchasesService({})

    def test_default_company_is_first(self, service):
        assert service.default_company == "solucions"
        assert service.client().company_id == "solucions"
        assert service.company_ids() == ["solucions", "menjar"]

    def test_unknown_company(self, service):
        with pytest.raises(UnknownCompanyError) as exc_info:
            service.client("nope")
        assert exc_info.value.status_code == 404

    def test_clients_are_cached(self, service):
        assert service.client("menjar") is service.client("menjar")

    def test_pending_and_overdue(self, service):
        pending = service.get_pending_purchases(page=1, limit=50, company="menjar")
        overdue = service.get_overdue_purchases(page=1, limit=50, company="menjar")

        assert [p["id"] for p in pending] == ["m1", "m2"]
        assert [p["id"] for p in overdue] == ["m1"]

    def test_all_contacts_annotated(self, service):
        contacts = service.get_all_contacts(company="menjar")

        assert contacts == [
            {
                "id": "h1",
                "name": "L'Hort",
                "bankAccount": "ES77",
                "mobile": "600",
                "iban": "ES77",
                "has_iban": True,
                "phone": "600",
            }
        ]

    def test_purchase_details(self, service):
        details = service.get_purchase_details("m1", company="menjar")

        assert details["holded_id"] == "m1"
        assert details["iban"] == "ES77"
        assert details["account"] == "MENJAR_D_HORT"
        assert details["holded_contact_id"] == "h1"

    def test_connection(self, service):
        assert service.test_connection("menjar") == {"success": True, "company": "menjar"}

    def test_sync_documents(self, service, db_session):
        result = service.sync_documents_with_database(db_session, "menjar", uploaded_by="u-1")

        assert result["inserted_count"] == 2
        assert result["sync_record"]["uploaded_by"] == "u-1"
        assert result["sync_record"]["metadata"]["company"] == "menjar"


@pytest.fixture
def api(service, engine, session_factory):
    DatabaseConfig.configure(engine)

    def override_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        finally:
            session.close()

    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_db] = override_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    DatabaseConfig._engine = None
    DatabaseConfig._session_factory = None


class TestHttpApi:
    """FastAPI endpoints."""

    def test_root(self, api):
        response = api.get("/")
        assert response.status_code == 200
        assert "/companies" in response.json()["endpoints"]

    def test_healthz(self, api):
        response = api.get("/healthz")
        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "healthy"

    def test_metrics(self, api):
        response = api.get("/metrics")
        assert response.status_code == 200
        assert "holded_sync_runs_total" in response.text

    def test_companies(self, api):
        assert api.get("/companies").json() == {"companies": ["solucions", "menjar"]}

    def test_pending(self, api):
        response = api.get("/companies/menjar/purchases/pending", params={"page": 1, "limit": 10})
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == ["m1", "m2"]

    def test_overdue(self, api):
        response = api.get("/companies/menjar/purchases/overdue")
        assert [p["id"] for p in response.json()] == ["m1"]

    def test_invalid_limit(self, api):
        assert api.get("/companies/menjar/purchases/pending", params={"limit": 0}).status_code == 422

    def test_purchase_details(self, api):
        response = api.get("/companies/menjar/purchases/m1")
        assert response.status_code == 200
        assert response.json()["iban"] == "ES77"

    def test_contacts(self, api):
        response = api.get("/companies/menjar/contacts")
        assert response.json()[0]["has_iban"] is True

    def test_unknown_company(self, api):
        response = api.get("/companies/nope/contacts")
        assert response.status_code == 404
        assert response.json()["code"] == "configuration"

    def test_auth_error_maps_to_401(self, api, fake_clients):
        def reject(**kwargs):
            raise HoldedAuthError("Holded API key invalid or unauthorized for solucions", 401)

        fake_clients["solucions"].get_purchases = reject

        response = api.get("/companies/solucions/purchases/pending")
        assert response.status_code == 401
        assert response.json() == {
            "code": "auth",
            "message": "Holded API key invalid or unauthorized for solucions",
        }

    def test_remote_error_maps_to_502(self, api):
        response = api.get("/companies/menjar/purchases/missing")
        assert response.status_code == 502
        assert response.json()["code"] == "remote_api"

    def test_sync_and_sync_runs(self, api):
        response = api.post("/companies/solucions/sync", params={"uploaded_by": "u-9"})
        assert response.status_code == 200
        assert response.json()["inserted_count"] == 1

        runs = api.get("/sync-runs").json()["sync_runs"]
        assert len(runs) == 1
        assert runs[0]["metadata"]["documents_count"] == 1
        assert runs[0]["uploaded_by"] == "u-9"

    def test_sync_in_progress_maps_to_409(self, api):
        with single_flight("solucions"):
            response = api.post("/companies/solucions/sync")

        assert response.status_code == 409
        assert response.json()["code"] == "sync_in_progress"

    def test_unexpected_sync_error_is_counted(self, api, service):
        errors = sync_runs_total.labels(company="solucions", status="error")
        before = errors._value.get()

        with patch.object(service, "sync_documents_with_database", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                api.post("/companies/solucions/sync")

        assert errors._value.get() == before + 1
