"""Invoice record operations: create, read, list, merge-update, delete.

Writes go through validation first; a payload that fails validation never
reaches the repository. Updates load the stored record, merge the incoming
partial payload into it, re-validate the whole and only then write.

Updates are last-writer-wins: two concurrent updates of the same record are
not detected.
"""

import logging
from typing import Any

from services.extraction.schema import StoredInvoice
from services.extraction.validation import ensure_valid_invoice
from services.invoices.normalizer import (
    canonical_fields,
    merge_for_update,
    normalize_record,
    unwrap_envelope,
)
from services.invoices.repository import InvoiceRepository
from services.shared.errors import NotFoundError, SchemaValidationError

logger = logging.getLogger(__name__)


class InvoiceService:
    """Validating facade over an InvoiceRepository."""

    def __init__(self, repository: InvoiceRepository) -> None:
        """Initialize invoice service.

        Args:
            repository: Persistence gateway
        """
        self.repository = repository

    async def create(self, payload: Any) -> StoredInvoice:
        """Validate, normalize and store a new invoice.

        Args:
            payload: Record in wire form, optionally wrapped as {"data": ...}

        Returns:
            Stored record with id and timestamps

        Raises:
            SchemaValidationError: If the payload is not a valid invoice
        """
        record = normalize_record(ensure_valid_invoice(unwrap_envelope(payload)))
        stored = await self.repository.create(canonical_fields(record))
        logger.info(f"Created invoice {stored.id} ({stored.invoice.number})")
        return stored

    async def get(self, invoice_id: str) -> StoredInvoice:
        """Fetch one invoice.

        Raises:
            NotFoundError: If no record has this id
        """
        stored = await self.repository.get(invoice_id)
        if stored is None:
            raise NotFoundError(invoice_id)
        return stored

    async def list_invoices(self, query: str | None = None) -> list[StoredInvoice]:
        """List invoices whose vendor name or invoice number contains query."""
        return await self.repository.list_invoices(query)

    async def update(self, invoice_id: str, payload: Any) -> StoredInvoice:
        """Merge a partial payload into a stored invoice and write the result.

        Args:
            invoice_id: Record id
            payload: Partial record in wire form, optionally wrapped as {"data": ...}

        Returns:
            Updated record

        Raises:
            NotFoundError: If no record has this id
            SchemaValidationError: If the payload is not an object or the merged
                record is invalid (nothing is written)
        """
        existing = await self.get(invoice_id)

        incoming = unwrap_envelope(payload)
        if not isinstance(incoming, dict):
            raise SchemaValidationError([{"path": "<root>", "reason": "Expected a JSON object"}])

        merged = merge_for_update(existing.model_dump(by_alias=True), incoming)
        merged.pop("id", None)
        record = normalize_record(ensure_valid_invoice(merged))

        updated = await self.repository.update(invoice_id, canonical_fields(record))
        if updated is None:
            # deleted between load and write
            raise NotFoundError(invoice_id)

        logger.info(f"Updated invoice {invoice_id}")
        return updated

    async def delete(self, invoice_id: str) -> bool:
        """Delete an invoice; the source document is left untouched.

        Returns:
            True if a record was deleted, False if none existed
        """
        deleted = await self.repository.delete(invoice_id)
        if deleted:
            logger.info(f"Deleted invoice {invoice_id}")
        return deleted

    async def health_check(self) -> bool:
        """Check the persistence backend is reachable."""
        return await self.repository.health_check()
