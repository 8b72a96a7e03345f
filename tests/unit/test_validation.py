"""Unit tests for invoice schema validation.

Tests cover:
- Strict JSON parsing of recovered candidates
- Schema validation with field-level issues
- Numeric string coercion
- Re-validation idempotence
"""

from typing import Any

import pytest

from services.extraction.schema import InvoiceRecord
from services.extraction.validation import (
    ensure_valid_invoice,
    parse_candidate,
    validate_invoice,
)
from services.shared.errors import JsonSyntaxError, SchemaValidationError


@pytest.fixture
def invoice_payload() -> dict[str, Any]:
    """Complete invoice payload in wire form."""
    return {
        "fileId": "https://files.example.com/inv-001.pdf",
        "fileName": "inv-001.pdf",
        "vendor": {"name": "ACME Corp", "address": "1 Main St", "taxId": "GB123"},
        "invoice": {
            "number": "INV-001",
            "date": "2024-03-01",
            "currency": "USD",
            "subtotal": 100,
            "taxPercent": 18,
            "total": 118,
            "poNumber": "PO-9",
            "poDate": "2024-02-20",
            "lineItems": [
                {"description": "Widget", "unitPrice": 25, "quantity": 4, "total": 100},
            ],
        },
    }


class TestParseCandidate:
    """Strict JSON parse."""

    def test_valid_json(self) -> None:
        assert parse_candidate('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_invalid_json(self) -> None:
        with pytest.raises(JsonSyntaxError) as exc_info:
            parse_candidate('{"a": 1,}')

        error = exc_info.value
        assert error.kind == "json_syntax_error"
        assert error.details["rawPreview"] == '{"a": 1,}'
        assert error.details["parseError"]

    def test_unbalanced_span(self) -> None:
        with pytest.raises(JsonSyntaxError):
            parse_candidate('{"x": 1} b {"y": 2}')

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_literals_rejected(self, literal: str) -> None:
        candidate = f'{{"subtotal": {literal}}}'

        with pytest.raises(JsonSyntaxError) as exc_info:
            parse_candidate(candidate)

        assert literal in exc_info.value.details["parseError"]
        assert exc_info.value.details["rawPreview"] == candidate


class TestValidateInvoice:
    """Schema validation returns a tagged result."""

    def test_valid_payload(self, invoice_payload: dict[str, Any]) -> None:
        result = validate_invoice(invoice_payload)

        assert result.ok is True
        assert result.issues == []
        assert result.record is not None
        assert result.record.vendor.tax_id == "GB123"
        assert result.record.invoice.line_items[0].unit_price == 25.0

    def test_minimal_payload(self) -> None:
        result = validate_invoice(
            {
                "fileId": "f",
                "fileName": "f.pdf",
                "vendor": {"name": "V"},
                "invoice": {"number": "1", "date": "2024-01-01"},
            }
        )

        assert result.ok is True
        assert result.record is not None
        assert result.record.invoice.line_items == []
        assert result.record.invoice.total is None

    def test_numeric_strings_are_coerced(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["subtotal"] = "100.50"
        invoice_payload["invoice"]["taxPercent"] = " 18 "
        invoice_payload["invoice"]["lineItems"][0]["quantity"] = "4"

        result = validate_invoice(invoice_payload)

        assert result.ok is True
        assert result.record is not None
        assert result.record.invoice.subtotal == 100.5
        assert result.record.invoice.tax_percent == 18.0
        assert result.record.invoice.line_items[0].quantity == 4

    def test_blank_numeric_string_means_absent(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["total"] = ""

        result = validate_invoice(invoice_payload)

        assert result.ok is True
        assert result.record is not None
        assert result.record.invoice.total is None

    def test_null_line_items_become_empty(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["lineItems"] = None

        result = validate_invoice(invoice_payload)

        assert result.record is not None
        assert result.record.invoice.line_items == []

    def test_negative_unit_price_rejected(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["lineItems"][0]["unitPrice"] = -5

        result = validate_invoice(invoice_payload)

        assert result.ok is False
        assert [issue.path for issue in result.issues] == ["invoice.lineItems.0.unitPrice"]

    def test_missing_vendor_name(self, invoice_payload: dict[str, Any]) -> None:
        del invoice_payload["vendor"]["name"]

        result = validate_invoice(invoice_payload)

        assert result.ok is False
        assert result.issues[0].path == "vendor.name"

    def test_empty_invoice_number(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["number"] = ""

        result = validate_invoice(invoice_payload)

        assert result.ok is False
        assert result.issues[0].path == "invoice.number"

    def test_non_numeric_string_rejected(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["subtotal"] = "one hundred"

        result = validate_invoice(invoice_payload)

        assert result.ok is False
        assert result.issues[0].path == "invoice.subtotal"

    @pytest.mark.parametrize("value", ["Infinity", "nan", float("inf"), float("-inf")])
    def test_non_finite_numbers_rejected(
        self, invoice_payload: dict[str, Any], value: str | float
    ) -> None:
        invoice_payload["invoice"]["subtotal"] = value

        result = validate_invoice(invoice_payload)

        assert result.ok is False
        assert [issue.path for issue in result.issues] == ["invoice.subtotal"]

    def test_non_finite_line_item_rejected(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["invoice"]["lineItems"][0]["total"] = "Infinity"

        result = validate_invoice(invoice_payload)

        assert result.ok is False
        assert [issue.path for issue in result.issues] == ["invoice.lineItems.0.total"]

    def test_non_object_payload(self) -> None:
        result = validate_invoice(["not", "an", "object"])

        assert result.ok is False
        assert result.issues[0].path == "<root>"


class TestEnsureValidInvoice:
    """Raising variant used by the pipeline and the invoice service."""

    def test_returns_record(self, invoice_payload: dict[str, Any]) -> None:
        record = ensure_valid_invoice(invoice_payload)

        assert isinstance(record, InvoiceRecord)
        assert record.invoice.number == "INV-001"

    def test_raises_with_issue_list(self, invoice_payload: dict[str, Any]) -> None:
        invoice_payload["vendor"] = {}
        invoice_payload["invoice"]["lineItems"][0]["quantity"] = -1

        with pytest.raises(SchemaValidationError) as exc_info:
            ensure_valid_invoice(invoice_payload, candidate_preview="{...}")

        error = exc_info.value
        paths = {issue["path"] for issue in error.issues}
        assert paths == {"vendor.name", "invoice.lineItems.0.quantity"}
        assert error.details["rawPreview"] == "{...}"
        assert error.message.startswith("Validation failed:")

    def test_revalidation_is_idempotent(self, invoice_payload: dict[str, Any]) -> None:
        """Validating the serialized output of a validated record changes nothing."""
        invoice_payload["invoice"]["subtotal"] = "100"
        first = ensure_valid_invoice(invoice_payload)

        second = ensure_valid_invoice(first.to_wire())

        assert second == first
        assert second.to_wire() == first.to_wire()

    def test_wire_form_uses_camel_case(self, invoice_payload: dict[str, Any]) -> None:
        wire = ensure_valid_invoice(invoice_payload).to_wire()

        assert wire["fileId"] == invoice_payload["fileId"]
        assert wire["invoice"]["taxPercent"] == 18.0
        assert wire["invoice"]["lineItems"][0]["unitPrice"] == 25.0
        assert "createdAt" not in wire
