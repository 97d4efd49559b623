"""
Pending / overdue purchase selection.

Holded status codes: 0 draft, 1 confirmed, 2 special pending, 3 other.
Only drafts and special-pending purchases count as pending; confirmed
purchases are excluded even when unpaid.
"""

import logging
from collections.abc import Iterable
from datetime import date
from enum import Enum

from ..adapters.holded import HoldedClient
from ..common.dates import to_calendar_date, utc_today
from ..common.etl import dedupe_by_key
from ..common.pagination import PaginationPolicy, fetch_all_pages

logger = logging.getLogger(__name__)

PENDING_STATUSES = frozenset({0, 2})


class CollectionStrategy(str, Enum):
    """How pending and overdue purchases are gathered from Holded."""

    SINGLE_WALK = "single_walk"  # one walk, both filters applied locally
    SEPARATE_WALKS = "separate_walks"  # one walk per filter, unioned


def _status(purchase: dict) -> int | None:
    try:
        return int(purchase.get("status"))
    except (TypeError, ValueError):
        return None


def is_pending(purchase: dict) -> bool:
    return _status(purchase) in PENDING_STATUSES


def is_overdue(purchase: dict, today: date | None = None) -> bool:
    """Pending and due strictly before ``today`` (calendar dates, UTC)."""
    if not is_pending(purchase):
        return False
    due = to_calendar_date(purchase.get("dueDate"))
    if due is None:
        return False
    return due < (today or utc_today())


def filter_pending(purchases: Iterable[dict]) -> list[dict]:
    return [p for p in purchases if is_pending(p)]


def filter_overdue(purchases: Iterable[dict], today: date | None = None) -> list[dict]:
    today = today or utc_today()
    return [p for p in purchases if is_overdue(p, today)]


def fetch_all_purchases(
    client: HoldedClient,
    page_size: int = 100,
    policy: PaginationPolicy | str = PaginationPolicy.BEST_EFFORT,
    max_pages: int | None = None,
) -> list[dict]:
    """Walk every page of ``documents/purchase``."""
    return fetch_all_pages(
        lambda page, limit: client.get_purchases(page=page, limit=limit),
        page_size,
        policy=policy,
        max_pages=max_pages,
        label=f"{client.company_id} purchases",
    )


def collect_pending_and_overdue(
    client: HoldedClient,
    page_size: int = 100,
    policy: PaginationPolicy | str = PaginationPolicy.BEST_EFFORT,
    strategy: CollectionStrategy | str = CollectionStrategy.SINGLE_WALK,
    max_pages: int | None = None,
    today: date | None = None,
) -> list[dict]:
    """
    Gather pending and overdue purchases, deduplicated by ``id``.

    ``SINGLE_WALK`` fetches the purchase list once and applies both filters
    to it. ``SEPARATE_WALKS`` fetches it once per filter; the two walks can
    observe different data if Holded changes in between.
    """
    strategy = CollectionStrategy(strategy)
    today = today or utc_today()

    if strategy is CollectionStrategy.SINGLE_WALK:
        purchases = fetch_all_purchases(client, page_size, policy, max_pages)
        pending = filter_pending(purchases)
        overdue = filter_overdue(purchases, today)
    else:
        pending = filter_pending(fetch_all_purchases(client, page_size, policy, max_pages))
        overdue = filter_overdue(fetch_all_purchases(client, page_size, policy, max_pages), today)

    unique = dedupe_by_key(pending + overdue, "id")
    logger.info(
        f"[{client.company_id}] {len(pending)} pending, {len(overdue)} overdue, "
        f"{len(unique)} unique purchases"
    )
    return unique
