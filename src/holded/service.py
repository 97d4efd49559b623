"""
Caller-facing Holded purchases service.

Wraps the adapter and the pipeline modules behind one object per process.
Each company gets its own lazily built ``HoldedClient``; API keys stay in
this process and are never returned to callers.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.orm import Session

from ..adapters.holded import HoldedClient, HoldedError, HoldedErrorCode, create_holded_client
from ..config.loader import (
    ConfigurationError,
    HoldedCompanyConfig,
    get_api_settings,
    get_company_config,
    get_company_ids,
)
from .contacts import annotate_contact, enrich_single_purchase, fetch_all_contacts
from .filters import filter_overdue, filter_pending
from .invoices import transform_purchase
from .sync import SyncSettings, sync_documents_with_database

logger = logging.getLogger(__name__)


class UnknownCompanyError(HoldedError):
    """Company key not present in the configured registry."""

    code = HoldedErrorCode.CONFIGURATION


class HoldedPurchasesService:
    """Read and sync Holded purchases for a set of configured companies."""

    def __init__(
        self,
        companies: Mapping[str, HoldedCompanyConfig],
        settings: SyncSettings | None = None,
        client_factory: Callable[..., HoldedClient] = create_holded_client,
        client_options: dict[str, Any] | None = None,
        default_company: str | None = None,
    ):
        if not companies:
            raise ConfigurationError("At least one Holded company must be configured")
        self.companies = dict(companies)
        self.settings = settings or SyncSettings()
        self.client_factory = client_factory
        self.client_options = client_options or {}
        self.default_company = default_company or next(iter(self.companies))
        self._clients: dict[str, HoldedClient] = {}

    @classmethod
    def from_config(cls) -> "HoldedPurchasesService":
        """Build the service from ``config/app.yaml`` and the environment."""
        companies = {company_id: get_company_config(company_id) for company_id in get_company_ids()}
        return cls(
            companies,
            settings=SyncSettings.from_config(),
            client_options=get_api_settings(),
        )

    def company_ids(self) -> list[str]:
        return list(self.companies)

    def client(self, company: str | None = None) -> HoldedClient:
        company = company or self.default_company
        if company not in self.companies:
            raise UnknownCompanyError(f"Unknown Holded company: {company}", status_code=404)
        if company not in self._clients:
            self._clients[company] = self.client_factory(
                self.companies[company], **self.client_options
            )
        return self._clients[company]

    def test_connection(self, company: str | None = None) -> dict[str, Any]:
        """Check the company's credentials with the cheapest authenticated call."""
        client = self.client(company)
        client.test_connection()
        logger.info(f"[{client.company_id}] Holded connection OK")
        return {"success": True, "company": client.company_id}

    def get_pending_purchases(
        self, page: int = 1, limit: int = 100, company: str | None = None
    ) -> list[dict]:
        """Pending purchases (status 0 or 2) on one page."""
        return filter_pending(self.client(company).get_purchases(page=page, limit=limit))

    def get_overdue_purchases(
        self, page: int = 1, limit: int = 100, company: str | None = None
    ) -> list[dict]:
        """Pending purchases on one page whose due date is before today."""
        return filter_overdue(self.client(company).get_purchases(page=page, limit=limit))

    def get_all_contacts(self, company: str | None = None) -> list[dict]:
        """Every contact, annotated with its resolved ``iban`` and ``has_iban``."""
        contacts = fetch_all_contacts(
            self.client(company),
            page_size=self.settings.page_size,
            policy=self.settings.pagination_policy,
            max_pages=self.settings.max_pages,
        )
        return [annotate_contact(contact) for contact in contacts if isinstance(contact, dict)]

    def get_purchase_details(self, purchase_id: str, company: str | None = None) -> dict[str, Any]:
        """One purchase with its contact looked up and transformed to an invoice row."""
        client = self.client(company)
        purchase = client.get_purchase(purchase_id)
        return transform_purchase(enrich_single_purchase(client, purchase))

    def get_payment_methods(self, company: str | None = None) -> list[dict]:
        return self.client(company).get_payment_methods()

    def get_products(self, page: int = 1, limit: int = 100, company: str | None = None) -> list[dict]:
        return self.client(company).get_products(page=page, limit=limit)

    def sync_documents_with_database(
        self, session: Session, company: str | None = None, uploaded_by: str | None = None
    ) -> dict[str, Any]:
        """Run the full purchase sync for one company."""
        return sync_documents_with_database(
            session, self.client(company), self.settings, uploaded_by=uploaded_by
        )
