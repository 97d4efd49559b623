"""Holded invoicing API client adapter for read-only purchase and contact ingestion."""
import logging
import time
from enum import Enum
from typing import Any

import requests

from ..common.http import body_preview, is_json, parse_json_body, request_with_retry
from ..config.loader import HoldedCompanyConfig

logger = logging.getLogger(__name__)


class HoldedErrorCode(str, Enum):
    """Machine readable error categories surfaced to callers."""

    AUTH = "auth"
    NETWORK = "network"
    REMOTE_API = "remote_api"
    SYNC_WRITE = "sync_write"
    SYNC_IN_PROGRESS = "sync_in_progress"
    CONFIGURATION = "configuration"


class HoldedError(Exception):
    """Base exception for Holded integration errors."""

    code: HoldedErrorCode = HoldedErrorCode.REMOTE_API

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


class HoldedApiError(HoldedError):
    """Non-2xx response from the Holded API."""

    code = HoldedErrorCode.REMOTE_API


class HoldedAuthError(HoldedApiError):
    """Invalid or unauthorized API key."""

    code = HoldedErrorCode.AUTH


class HoldedNetworkError(HoldedError):
    """Request never got an HTTP answer (DNS, timeout, refused connection)."""

    code = HoldedErrorCode.NETWORK


class HoldedClient:
    """Holded invoicing API client bound to one company's credentials."""

    def __init__(
        self,
        company: HoldedCompanyConfig,
        session: requests.Session | None = None,
        timeout: float = 30,
        max_retries: int = 3,
        rate_limit_delay: float = 0.0,
    ):
        """Initialize the client.

        Args:
            company: Credentials and base URL for the Holded account
            session: Optional preconfigured session (tests inject mocks here)
            timeout: Per-request timeout in seconds
            max_retries: Attempts for transport failures
            rate_limit_delay: Minimum seconds between consecutive requests
        """
        self.company = company
        self.base_url = company.base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit_delay = rate_limit_delay
        self.last_request_time = 0.0

        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "key": company.api_key,
            }
        )

    @property
    def company_id(self) -> str:
        return self.company.id

    def _enforce_rate_limit(self):
        """Enforce a minimum delay between API requests."""
        if not self.rate_limit_delay:
            return
        now = time.time()
        time_since_last = now - self.last_request_time
        if time_since_last < self.rate_limit_delay:
            time.sleep(self.rate_limit_delay - time_since_last)
        self.last_request_time = now

    def request(
        self,
        endpoint: str,
        params: dict | None = None,
        method: str = "GET",
        json: dict | None = None,
    ) -> Any:
        """Make an authenticated request and return the decoded JSON body.

        Raises:
            HoldedAuthError: 401/403, or an HTML/non-JSON body (Holded's
                answer to a bad API key)
            HoldedApiError: Any other non-2xx response
            HoldedNetworkError: Transport failure after retries
        """
        self._enforce_rate_limit()
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = request_with_retry(
                self.session,
                method,
                url,
                params=params,
                json=json,
                timeout=self.timeout,
                attempts=self.max_retries,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.error(f"[{self.company_id}] Connection error for {url}: {e}")
            raise HoldedNetworkError(f"Request failed: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"[{self.company_id}] Request exception for {url}: {e}")
            raise HoldedNetworkError(f"Request failed: {e}") from e

        status = response.status_code
        body = parse_json_body(response)

        if not is_json(body):
            preview = body_preview(response)
            if status >= 500:
                raise HoldedApiError(
                    f"Holded server error ({status}): {preview}", status_code=status
                )
            logger.error(f"[{self.company_id}] Non-JSON response ({status}) from {url}: {preview}")
            raise HoldedAuthError(
                f"Holded API key invalid or unauthorized for {self.company_id} "
                f"(HTTP {status}, response was not JSON)",
                status_code=status,
            )

        if status in (401, 403):
            raise HoldedAuthError(
                f"Holded authentication failed for {self.company_id} (HTTP {status})",
                status_code=status,
            )
        if not 200 <= status < 300:
            raise HoldedApiError(f"Holded API error (HTTP {status}): {body}", status_code=status)

        return body

    def test_connection(self) -> Any:
        """Cheapest authenticated call, used to validate credentials."""
        return self.request("documents/purchase", {"page": 1, "limit": 1})

    def get_purchases(
        self,
        page: int = 1,
        limit: int = 100,
        sort: str = "created-desc",
        paid: int | str | None = None,
        starttmp: int | None = None,
        endtmp: int | None = None,
        contactid: str | None = None,
        status: int | None = None,
    ) -> list[dict]:
        """Get one page of purchase documents with optional filters."""
        params = {
            "page": page,
            "limit": limit,
            "sort": sort,
            "paid": paid,
            "starttmp": starttmp,
            "endtmp": endtmp,
            "contactid": contactid,
            "status": status,
        }
        return self._as_list(self.request("documents/purchase", params), "documents/purchase")

    def get_purchase(self, purchase_id: str) -> dict:
        """Get a single purchase document."""
        return self.request(f"documents/purchase/{purchase_id}")

    def get_contacts(self, page: int = 1, limit: int = 100) -> list[dict]:
        """Get one page of contacts."""
        return self._as_list(
            self.request("contacts", {"page": page, "limit": limit}), "contacts"
        )

    def get_contact(self, contact_id: str) -> dict:
        """Get a single contact."""
        return self.request(f"contacts/{contact_id}")

    def get_payment_methods(self) -> list[dict]:
        """Get configured payment methods."""
        return self._as_list(self.request("paymentmethods"), "paymentmethods")

    def get_products(self, page: int = 1, limit: int = 100) -> list[dict]:
        """Get one page of products."""
        return self._as_list(
            self.request("products", {"page": page, "limit": limit}), "products"
        )

    def _as_list(self, body: Any, endpoint: str) -> list[dict]:
        if isinstance(body, list):
            return body
        logger.warning(f"[{self.company_id}] Expected a list from {endpoint}, got {type(body).__name__}")
        return []


def create_holded_client(company: HoldedCompanyConfig, **kwargs) -> HoldedClient:
    """Factory function to create a Holded client for one company.

    Args:
        company: Credentials and base URL
        **kwargs: Passed through to ``HoldedClient``

    Returns:
        Configured HoldedClient instance
    """
    return HoldedClient(company, **kwargs)
