"""Business rules applied to invoice records before they are persisted.

- Derive invoice.total from subtotal and taxPercent when missing, both on
  create and on the merged record of an update.
- Update path: unwrap the optional {"data": ...} envelope, overlay the
  incoming partial payload onto the stored record, then re-validate the
  merged whole before anything is written.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from services.extraction.schema import InvoiceRecord

_CENTS = Decimal("0.01")
_NESTED_SECTIONS = ("vendor", "invoice")


def compute_total(subtotal: float, tax_percent: float | None) -> float:
    """subtotal + subtotal * tax_percent / 100, rounded half-up to 2 decimals."""
    base = Decimal(str(subtotal))
    tax = base * Decimal(str(tax_percent)) / Decimal(100) if tax_percent else Decimal(0)
    return float((base + tax).quantize(_CENTS, rounding=ROUND_HALF_UP))


def normalize_record(record: InvoiceRecord) -> InvoiceRecord:
    """Fill in the invoice total when only subtotal (and tax) are known.

    Args:
        record: Validated record

    Returns:
        Record with derived total (a copy; the input is left untouched)
    """
    details = record.invoice
    if details.total is not None or details.subtotal is None:
        return record

    derived = compute_total(details.subtotal, details.tax_percent)
    return record.model_copy(
        update={"invoice": details.model_copy(update={"total": derived})}
    )


def unwrap_envelope(payload: Any) -> Any:
    """Return payload["data"] if it is an object, otherwise the payload itself.

    Single-level check only: {"data": {"data": {...}}} unwraps once.
    """
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


def _stringify_timestamps(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def merge_for_update(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Overlay an incoming partial payload onto a stored record.

    Top-level keys are overlaid shallowly. "vendor" and "invoice" are merged
    key by key (one level only); lineItems, being a key of "invoice", is
    replaced wholesale when present. datetime values become ISO strings so
    the result validates against the string-typed schema.

    Args:
        existing: Stored record in wire (camelCase) form
        incoming: Unwrapped partial payload in wire form

    Returns:
        Merged candidate, not yet validated
    """
    merged: dict[str, Any] = {**existing, **incoming}
    for section in _NESTED_SECTIONS:
        current = existing.get(section) or {}
        update = incoming.get(section) or {}
        if not isinstance(update, dict):
            # let validation report the wrong type
            merged[section] = update
            continue
        merged[section] = {**current, **update}

    return {key: _stringify_timestamps(value) for key, value in merged.items()}


def canonical_fields(record: InvoiceRecord) -> dict[str, Any]:
    """Fields a write is allowed to persist: fileId, fileName, vendor, invoice.

    Server-assigned timestamps are excluded.
    """
    return record.model_dump(
        mode="json",
        by_alias=True,
        include={"file_id", "file_name", "vendor", "invoice"},
    )
