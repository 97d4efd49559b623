"""
Tests for date normalization, invoice cleaning, field aliases and channel
classification.
"""

import logging
from datetime import UTC, date, datetime

import pytest

from src.common.dates import convert_holded_date, to_calendar_date
from src.common.etl import coerce_float, dedupe_by_key
from src.holded.channels import DEFAULT_CHANNEL, ChannelRule, classify_channel
from src.holded.fields import (
    IBAN_FIELDS,
    resolve_iban,
    resolve_internal_number,
    resolve_invoice_number,
    resolve_provider_name,
    resolve_purchase_iban,
)
from src.holded.invoices import transform_purchase, transform_purchases, validate_and_clean_invoice_data


class TestConvertHoldedDate:
    """Holded's heterogeneous date encodings."""

    def test_seconds_and_milliseconds_agree(self):
        assert convert_holded_date(1700000000) == "2023-11-14T22:13:20.000Z"
        assert convert_holded_date(1700000000000) == "2023-11-14T22:13:20.000Z"

    def test_digit_string_is_timestamp(self):
        assert convert_holded_date("1700000000") == "2023-11-14T22:13:20.000Z"

    def test_milliseconds_are_kept(self):
        assert convert_holded_date(1700000000123) == "2023-11-14T22:13:20.123Z"

    def test_iso_string_unchanged(self):
        assert convert_holded_date("2024-01-15") == "2024-01-15"
        assert convert_holded_date("2024-01-15T10:30:00Z") == "2024-01-15T10:30:00Z"

    @pytest.mark.parametrize("value", [None, "", 0, "soon", [], {}])
    def test_unusable_values(self, value):
        assert convert_holded_date(value) is None

    def test_datetime_objects(self):
        assert convert_holded_date(datetime(2024, 3, 1, 12, 0, tzinfo=UTC)) == "2024-03-01T12:00:00.000Z"
        assert convert_holded_date(date(2024, 3, 1)) == "2024-03-01"

    def test_calendar_date(self):
        assert to_calendar_date(1700000000) == date(2023, 11, 14)
        assert to_calendar_date("2023-01-01") == date(2023, 1, 1)
        assert to_calendar_date("garbage-date") is None


class TestCleaning:
    """validate_and_clean_invoice_data defaults."""

    def test_numeric_defaults(self):
        cleaned = validate_and_clean_invoice_data({"total": "abc", "vat": None, "subtotal": "12.5 EUR"})

        assert cleaned["total"] == 0
        assert cleaned["vat"] == 0
        assert cleaned["subtotal"] == 12.5
        assert cleaned["pending"] == 0

    def test_paid_is_truthiness(self):
        assert validate_and_clean_invoice_data({"paid": "yes"})["paid"] is True
        assert validate_and_clean_invoice_data({"paid": ""})["paid"] is False
        assert validate_and_clean_invoice_data({})["paid"] is False

    def test_text_is_trimmed(self):
        cleaned = validate_and_clean_invoice_data({"provider": "  Acme  ", "status": 2})

        assert cleaned["provider"] == "Acme"
        assert cleaned["status"] == "2"
        assert cleaned["iban"] == ""

    def test_invalid_date_nulled_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            cleaned = validate_and_clean_invoice_data(
                {"due_date": "not-a-date", "issue_date": "2024-01-15"}
            )

        assert cleaned["due_date"] is None
        assert cleaned["issue_date"] == "2024-01-15"
        assert "due_date" in caplog.text

    def test_coerce_float_rejects_nan(self):
        assert coerce_float("nan") == 0
        assert coerce_float(True) == 0
        assert coerce_float("-3.5") == -3.5


class TestFieldAliases:
    """Ordered alias chains."""

    def test_iban_priority(self):
        assert resolve_iban({"bank_account": "B", "paymentInfo": "P"}) == "B"
        assert resolve_iban({"iban": "", "accountNumber": " A "}) == "A"
        assert resolve_iban({}) == ""
        assert resolve_iban(None) == ""

    @pytest.mark.parametrize("alias", IBAN_FIELDS)
    def test_every_iban_alias_is_read(self, alias):
        assert resolve_iban({alias: "ES99"}) == "ES99"

    def test_purchase_iban_prefers_contact(self):
        purchase = {"iban": "PURCHASE", "contact": {"bankAccount": "CONTACT"}}
        assert resolve_purchase_iban(purchase) == "CONTACT"
        assert resolve_purchase_iban({"iban": "PURCHASE", "contact": {}}) == "PURCHASE"

    def test_invoice_number(self):
        assert resolve_invoice_number({"id": "p1", "num": "F-2", "number": "3"}) == "F-2"
        assert resolve_invoice_number({"id": "p1"}) == "HOLD-p1"

    def test_internal_number(self):
        assert resolve_internal_number({"internalNum": "I-1", "docNumber": "D-1"}) == "I-1"
        assert resolve_internal_number({"docNumber": "D-1"}) == "D-1"

    def test_provider_name(self):
        assert resolve_provider_name({"contact": {"company": "Acme SL"}}) == "Acme SL"
        assert resolve_provider_name({"contact": "c1", "contactName": "Acme"}) == "Acme"
        assert resolve_provider_name({}) == "Proveedor Holded"


class TestChannelClassifier:
    """Ordered rule table."""

    @pytest.mark.parametrize(
        "provider,tags,expected",
        [
            ("Catering Sants", None, "CATERING"),
            ("Fusteria", ["estructura"], "ESTRUCTURA"),
            ("IDONI Botiga", None, "IDONI"),
            ("Obrador Central", None, "OBRADOR"),
            ("Menjar d'Hort", None, "MENJAR_D_HORT"),
            ("Verdures", "hort", "MENJAR_D_HORT"),
            ("Acme", None, DEFAULT_CHANNEL),
            (None, None, DEFAULT_CHANNEL),
        ],
    )
    def test_classification(self, provider, tags, expected):
        assert classify_channel(provider, tags) == expected

    def test_earlier_rule_wins(self):
        assert classify_channel("Catering de l'Hort") == "CATERING"
        assert classify_channel("Hort", ["obrador"]) == "OBRADOR"

    def test_custom_rules(self):
        rules = (ChannelRule("BAR", ("bar",)),)
        assert classify_channel("Bar Pepe", rules=rules) == "BAR"
        assert classify_channel("Catering", rules=rules) == DEFAULT_CHANNEL


class TestTransformPurchase:
    """Holded purchase to invoice row mapping."""

    @pytest.fixture
    def purchase(self):
        return {
            "id": "p1",
            "docNumber": "F2024-001",
            "date": 1700000000,
            "dueDate": "2024-01-15",
            "contact": {"id": "c1", "name": "Obrador Gràcia", "iban": "ES11"},
            "tags": ["verdura", "setmanal"],
            "subtotal": "100",
            "tax": 21,
            "total": 121,
            "equipmentRecovery": 5,
            "status": 2,
        }

    def test_transform_complete(self, purchase):
        invoice = transform_purchase(purchase)

        assert invoice["holded_id"] == "p1"
        assert invoice["invoice_number"] == "F2024-001"
        assert invoice["internal_number"] == "F2024-001"
        assert invoice["issue_date"] == "2023-11-14T22:13:20.000Z"
        assert invoice["due_date"] == "2024-01-15"
        assert invoice["accounting_date"] is None
        assert invoice["provider"] == "Obrador Gràcia"
        assert invoice["tags"] == "verdura, setmanal"
        assert invoice["account"] == invoice["project"] == "OBRADOR"
        assert invoice["description"] == "Compra OBRADOR - Obrador Gràcia"
        assert invoice["subtotal"] == 100.0
        assert invoice["vat"] == 21.0
        assert invoice["equipment_recovery"] == 5.0
        assert invoice["pending"] == 121.0
        assert invoice["paid"] is False
        assert invoice["status"] == "2"
        assert invoice["holded_contact_id"] == "c1"
        assert invoice["iban"] == "ES11"
        assert invoice["document_type"] == "purchase"

    def test_explicit_pending_and_notes(self, purchase):
        purchase.update(pending=40, notes="Factura gener")

        invoice = transform_purchase(purchase)

        assert invoice["pending"] == 40.0
        assert invoice["description"] == "Factura gener"

    def test_zero_pending_falls_back_to_total(self, purchase):
        purchase["pending"] = 0
        assert transform_purchase(purchase)["pending"] == 121.0

    def test_numeric_ids_become_text(self, purchase):
        purchase.update(id=12345, contact={"id": 678, "name": "Acme"})

        invoice = transform_purchase(purchase)

        assert invoice["holded_id"] == "12345"
        assert invoice["holded_contact_id"] == "678"

    def test_draft_status_becomes_pendiente(self, purchase):
        purchase["status"] = 0
        assert transform_purchase(purchase)["status"] == "Pendiente"

    def test_missing_id_is_skipped(self, purchase, caplog):
        invoices = transform_purchases([purchase, {"total": 5}])

        assert [invoice["holded_id"] for invoice in invoices] == ["p1"]
        assert "without id" in caplog.text


def test_dedupe_keeps_first_occurrence():
    items = [{"id": "a", "n": 1}, {"id": "b"}, {"id": "a", "n": 2}, {"n": 3}]

    unique = dedupe_by_key(items)

    assert [item.get("n") for item in unique] == [1, None, 3]
