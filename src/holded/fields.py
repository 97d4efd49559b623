"""
Field alias chains for Holded payloads.

Holded stores the same information under different keys depending on how a
record was created (UI, import, API). Each chain below is the ordered list
of places to look; the first non-empty value wins.
"""

from typing import Any

from ..common.etl import field, first_present

IBAN_FIELDS = (
    "iban",
    "bankAccount",
    "bank_account",
    "accountNumber",
    "account_number",
    "bankDetails",
    "bank_details",
    "paymentInfo",
    "payment_info",
)

INVOICE_NUMBER_FIELDS = ("docNumber", "num", "number")

IBAN_ACCESSORS = tuple(field(name) for name in IBAN_FIELDS)
INVOICE_NUMBER_ACCESSORS = tuple(field(name) for name in INVOICE_NUMBER_FIELDS)
INTERNAL_NUMBER_ACCESSORS = (field("internalNum"),) + INVOICE_NUMBER_ACCESSORS


def embedded_contact(purchase: dict) -> dict:
    """The contact embedded in a purchase; some payloads carry only its id."""
    contact = purchase.get("contact")
    if isinstance(contact, dict):
        return contact
    if isinstance(contact, str) and contact:
        return {"id": contact, "name": purchase.get("contactName")}
    return {}


def resolve_iban(record: dict | None) -> str:
    """IBAN from the first populated banking field of a contact-like record."""
    value = first_present(record, IBAN_ACCESSORS)
    return str(value).strip() if value is not None else ""


def resolve_purchase_iban(purchase: dict | None) -> str:
    """IBAN for a purchase: its contact's banking fields, then its own."""
    if not purchase:
        return ""
    return resolve_iban(embedded_contact(purchase)) or resolve_iban(purchase)


def resolve_invoice_number(purchase: dict) -> Any:
    """Invoice number, falling back to a synthetic ``HOLD-<id>``."""
    return first_present(purchase, INVOICE_NUMBER_ACCESSORS) or f"HOLD-{purchase.get('id')}"


def resolve_internal_number(purchase: dict) -> Any:
    return first_present(purchase, INTERNAL_NUMBER_ACCESSORS)


def resolve_provider_name(purchase: dict, default: str = "Proveedor Holded") -> str:
    contact = embedded_contact(purchase)
    return (
        first_present(contact, (field("name"), field("company")))
        or first_present(purchase, (field("contactName"),))
        or default
    )
