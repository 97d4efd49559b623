"""
Contact directory lookup and purchase enrichment.

Purchases embed only a thin contact (id and name). Banking details live on
the full contact record, so the directory is fetched once and matched by
normalized name.
"""

import logging
from collections.abc import Iterable

from ..adapters.holded import HoldedClient, HoldedError
from ..common.pagination import PaginationPolicy, fetch_all_pages
from .fields import embedded_contact, resolve_iban

logger = logging.getLogger(__name__)


def normalize_name(name) -> str:
    return str(name or "").lower().strip()


def fetch_all_contacts(
    client: HoldedClient,
    page_size: int = 100,
    policy: PaginationPolicy | str = PaginationPolicy.BEST_EFFORT,
    max_pages: int | None = None,
) -> list[dict]:
    """Walk every page of ``contacts``."""
    return fetch_all_pages(
        lambda page, limit: client.get_contacts(page=page, limit=limit),
        page_size,
        policy=policy,
        max_pages=max_pages,
        label=f"{client.company_id} contacts",
    )


def annotate_contact(contact: dict) -> dict:
    """Copy of a contact with ``iban``/``has_iban`` resolved and a phone picked."""
    iban = resolve_iban(contact)
    return {
        **contact,
        "iban": iban,
        "has_iban": bool(iban),
        "phone": contact.get("mobile") or contact.get("phone") or "",
    }


def build_contact_lookup(contacts: Iterable[dict]) -> dict[str, dict]:
    """Map normalized contact name to contact; later duplicates replace earlier ones."""
    lookup: dict[str, dict] = {}
    duplicates = 0
    for contact in contacts:
        if not isinstance(contact, dict):
            continue
        key = normalize_name(contact.get("name"))
        if not key:
            continue
        if key in lookup:
            duplicates += 1
        lookup[key] = contact
    if duplicates:
        logger.warning(f"{duplicates} contacts share a name with another contact; last one wins")
    return lookup


def merge_contact(purchase: dict, contact: dict) -> dict:
    """Purchase copy whose embedded contact is overlaid with ``contact``."""
    embedded = embedded_contact(purchase)
    merged = {**embedded, **contact}
    merged["iban"] = resolve_iban(contact) or resolve_iban(embedded)
    return {**purchase, "contact": merged}


def enrich_purchases(purchases: Iterable[dict], contacts: Iterable[dict]) -> list[dict]:
    """
    Merge full contact records onto each purchase's embedded contact.

    Purchases whose contact name is not in the directory pass through
    unchanged. A failure on one purchase is logged and that purchase is
    returned as received.
    """
    lookup = build_contact_lookup(contacts)
    enriched = []
    matched = 0

    for purchase in purchases:
        try:
            name = embedded_contact(purchase).get("name")
            contact = lookup.get(normalize_name(name))
            if contact is None:
                enriched.append(purchase)
                continue
            enriched.append(merge_contact(purchase, contact))
            matched += 1
        except Exception as e:
            logger.warning(f"Could not enrich purchase {purchase.get('id')}: {e}")
            enriched.append(purchase)

    logger.info(f"Enriched {matched} of {len(enriched)} purchases with contact details")
    return enriched


def enrich_from_directory(
    client: HoldedClient,
    purchases: list[dict],
    page_size: int = 100,
    policy: PaginationPolicy | str = PaginationPolicy.BEST_EFFORT,
    max_pages: int | None = None,
) -> list[dict]:
    """Fetch the contact directory once and enrich ``purchases`` with it."""
    if not purchases:
        return purchases
    try:
        contacts = fetch_all_contacts(client, page_size, policy, max_pages)
    except HoldedError as e:
        logger.warning(f"[{client.company_id}] Contact directory unavailable, skipping enrichment: {e}")
        return purchases
    return enrich_purchases(purchases, contacts)


def enrich_single_purchase(client: HoldedClient, purchase: dict) -> dict:
    """Enrich one purchase through ``contacts/{id}``; lenient on failure."""
    contact_id = embedded_contact(purchase).get("id")
    if not contact_id:
        return purchase
    try:
        contact = client.get_contact(contact_id)
    except HoldedError as e:
        logger.info(f"Could not fetch contact {contact_id}: {e}")
        return purchase
    if not isinstance(contact, dict):
        return purchase
    return merge_contact(purchase, contact)
