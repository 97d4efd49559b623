"""
Holded purchase document to invoice row transformation.

Every row written to ``invoices`` goes through
``validate_and_clean_invoice_data``: numbers are numbers, text is trimmed
text, and dates either parse or become NULL.
"""

import logging
from typing import Any

from ..common.dates import convert_holded_date, is_valid_date
from ..common.etl import coerce_float, coerce_text
from .channels import classify_channel
from .fields import (
    embedded_contact,
    resolve_internal_number,
    resolve_invoice_number,
    resolve_provider_name,
    resolve_purchase_iban,
)

logger = logging.getLogger(__name__)

DOCUMENT_TYPE = "purchase"
DEFAULT_STATUS = "Pendiente"

NUMERIC_FIELDS = (
    "subtotal",
    "vat",
    "retention",
    "employees",
    "equipment_recovery",
    "total",
    "pending",
)
TEXT_FIELDS = (
    "invoice_number",
    "internal_number",
    "provider",
    "description",
    "tags",
    "account",
    "project",
    "status",
    "iban",
)
DATE_FIELDS = ("issue_date", "accounting_date", "due_date", "payment_date")

# Columns rewritten when a known holded_id shows up again
MUTABLE_FIELDS = (
    "invoice_number",
    "internal_number",
    "issue_date",
    "accounting_date",
    "due_date",
    "provider",
    "description",
    "tags",
    "account",
    "project",
    "subtotal",
    "vat",
    "retention",
    "employees",
    "equipment_recovery",
    "total",
    "paid",
    "pending",
    "status",
    "payment_date",
    "holded_contact_id",
    "iban",
    "document_type",
)


def validate_and_clean_invoice_data(invoice: dict[str, Any]) -> dict[str, Any]:
    """
    Return a cleaned copy of an invoice row.

    - numeric fields: parsed as float, 0 when missing or unparseable
    - text fields: ``str`` and trimmed, ``""`` when missing
    - ``paid``: plain truthiness, so ``"yes"`` and ``"false"`` are both True
    - date fields: set to None, with a warning, when they do not parse
    """
    cleaned = dict(invoice)

    for name in NUMERIC_FIELDS:
        cleaned[name] = coerce_float(cleaned.get(name))

    cleaned["paid"] = bool(cleaned.get("paid"))

    for name in TEXT_FIELDS:
        cleaned[name] = coerce_text(cleaned.get(name))

    for name in DATE_FIELDS:
        value = cleaned.get(name)
        if value and not is_valid_date(value):
            logger.warning(f"Invalid date in {name}: {value!r}")
            cleaned[name] = None
        elif not value:
            cleaned[name] = None

    return cleaned


def _join_tags(tags: Any) -> str:
    if not tags:
        return ""
    if isinstance(tags, str):
        return tags
    return ", ".join(str(tag) for tag in tags if tag is not None)


def transform_purchase(purchase: dict) -> dict[str, Any]:
    """Map one Holded purchase document to a cleaned invoice row."""
    provider = resolve_provider_name(purchase)
    tags = _join_tags(purchase.get("tags"))
    channel = classify_channel(provider, tags)

    transformed = {
        "holded_id": coerce_text(purchase.get("id")) or None,
        "invoice_number": resolve_invoice_number(purchase),
        "internal_number": resolve_internal_number(purchase),
        "issue_date": convert_holded_date(purchase.get("date")),
        "accounting_date": convert_holded_date(purchase.get("accountingDate")),
        "due_date": convert_holded_date(purchase.get("dueDate")),
        "provider": provider,
        "description": purchase.get("notes")
        or purchase.get("description")
        or f"Compra {channel} - {provider}",
        "tags": tags,
        "account": channel,
        "project": channel,
        "subtotal": purchase.get("subtotal"),
        "vat": purchase.get("tax"),
        "retention": purchase.get("retention"),
        "employees": purchase.get("employees"),
        "equipment_recovery": purchase.get("equipmentRecovery"),
        "total": purchase.get("total"),
        "paid": purchase.get("paid") or False,
        "pending": purchase.get("pending") or purchase.get("total"),
        "status": purchase.get("status") or DEFAULT_STATUS,
        "payment_date": convert_holded_date(purchase.get("paymentDate")),
        "holded_contact_id": coerce_text(embedded_contact(purchase).get("id")) or None,
        "iban": resolve_purchase_iban(purchase),
        "document_type": DOCUMENT_TYPE,
    }

    return validate_and_clean_invoice_data(transformed)


def transform_purchases(purchases: list[dict]) -> list[dict[str, Any]]:
    """Transform a batch, skipping (and logging) documents without an id."""
    invoices = []
    for purchase in purchases:
        if not purchase.get("id"):
            logger.warning(f"Skipping purchase without id: {purchase}")
            continue
        invoices.append(transform_purchase(purchase))
    return invoices
