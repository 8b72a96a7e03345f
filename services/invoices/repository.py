"""Persistence gateway for invoice records.

Two implementations of the same async interface:

- InMemoryInvoiceRepository: process-local dict, used for development and tests
- StorageInvoiceRepository: one JSON object per record in S3-compatible storage

Both assign the id and both timestamps themselves; callers only ever pass
canonical fields (fileId, fileName, vendor, invoice).
"""

import asyncio
import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

from services.extraction.schema import StoredInvoice
from services.shared.config import Settings
from services.storage.service import StorageService

logger = logging.getLogger(__name__)


class InvoiceRepository(Protocol):
    """Protocol for invoice persistence backends."""

    async def create(self, fields: dict[str, Any]) -> StoredInvoice:
        """Store a new record and return it with id and timestamps."""
        ...

    async def get(self, invoice_id: str) -> StoredInvoice | None:
        """Return the record or None if it does not exist."""
        ...

    async def update(self, invoice_id: str, fields: dict[str, Any]) -> StoredInvoice | None:
        """Replace canonical fields; None if the record does not exist."""
        ...

    async def delete(self, invoice_id: str) -> bool:
        """Delete the record; False if it did not exist."""
        ...

    async def list_invoices(self, query: str | None = None) -> list[StoredInvoice]:
        """List records, optionally filtered by vendor name or invoice number."""
        ...

    async def health_check(self) -> bool:
        """Check the backend can serve requests."""
        ...


def matches_query(invoice: StoredInvoice, query: str | None) -> bool:
    """Case-insensitive substring match on vendor name or invoice number."""
    if not query:
        return True
    needle = query.casefold()
    return needle in invoice.vendor.name.casefold() or needle in invoice.invoice.number.casefold()


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryInvoiceRepository:
    """Invoice repository backed by a dict. Not shared across processes."""

    def __init__(self) -> None:
        self._records: dict[str, StoredInvoice] = {}

    async def create(self, fields: dict[str, Any]) -> StoredInvoice:
        now = _now()
        record = StoredInvoice.model_validate(
            {**fields, "id": uuid.uuid4().hex, "createdAt": now, "updatedAt": now}
        )
        self._records[record.id] = record
        return record

    async def get(self, invoice_id: str) -> StoredInvoice | None:
        return self._records.get(invoice_id)

    async def update(self, invoice_id: str, fields: dict[str, Any]) -> StoredInvoice | None:
        existing = self._records.get(invoice_id)
        if existing is None:
            return None
        record = StoredInvoice.model_validate(
            {
                **fields,
                "id": invoice_id,
                "createdAt": existing.created_at,
                "updatedAt": _now(),
            }
        )
        self._records[invoice_id] = record
        return record

    async def delete(self, invoice_id: str) -> bool:
        return self._records.pop(invoice_id, None) is not None

    async def list_invoices(self, query: str | None = None) -> list[StoredInvoice]:
        return [record for record in self._records.values() if matches_query(record, query)]

    async def health_check(self) -> bool:
        return True


class StorageInvoiceRepository:
    """Invoice repository storing each record as a JSON object.

    MinIO calls are blocking, so they run in worker threads. Listing reads
    every record under the prefix; fine for modest volumes, not for search.
    """

    def __init__(self, settings: Settings, storage: StorageService | None = None) -> None:
        """Initialize storage-backed repository.

        Args:
            settings: Application settings (bucket, records prefix)
            storage: Storage service (created from settings if omitted)
        """
        self.settings = settings
        self.storage = storage or StorageService(settings)
        self._prefix = settings.storage_records_prefix

    def _object_name(self, invoice_id: str) -> str:
        return f"{self._prefix}{invoice_id}.json"

    async def _write(self, record: StoredInvoice) -> StoredInvoice:
        payload = record.model_dump_json(by_alias=True).encode("utf-8")
        result = await asyncio.to_thread(
            self.storage.upload_bytes, payload, self._object_name(record.id)
        )
        if not result.success:
            raise RuntimeError(f"Failed to store invoice {record.id}: {result.error}")
        return record

    async def create(self, fields: dict[str, Any]) -> StoredInvoice:
        now = _now()
        record = StoredInvoice.model_validate(
            {**fields, "id": uuid.uuid4().hex, "createdAt": now, "updatedAt": now}
        )
        return await self._write(record)

    async def get(self, invoice_id: str) -> StoredInvoice | None:
        result = await asyncio.to_thread(
            self.storage.download_bytes, self._object_name(invoice_id)
        )
        if result.not_found:
            return None
        if not result.success or result.data is None:
            raise RuntimeError(f"Failed to read invoice {invoice_id}: {result.error}")
        return StoredInvoice.model_validate(json.loads(result.data))

    async def update(self, invoice_id: str, fields: dict[str, Any]) -> StoredInvoice | None:
        existing = await self.get(invoice_id)
        if existing is None:
            return None
        record = StoredInvoice.model_validate(
            {
                **fields,
                "id": invoice_id,
                "createdAt": existing.created_at,
                "updatedAt": _now(),
            }
        )
        return await self._write(record)

    async def delete(self, invoice_id: str) -> bool:
        object_name = self._object_name(invoice_id)
        if not await asyncio.to_thread(self.storage.object_exists, object_name):
            return False
        result = await asyncio.to_thread(self.storage.delete_object, object_name)
        if not result.success:
            raise RuntimeError(f"Failed to delete invoice {invoice_id}: {result.error}")
        return True

    async def list_invoices(self, query: str | None = None) -> list[StoredInvoice]:
        names = await asyncio.to_thread(self.storage.list_object_names, self._prefix)
        records = []
        for name in names:
            invoice_id = name[len(self._prefix) :].removesuffix(".json")
            record = await self.get(invoice_id)
            if record is not None and matches_query(record, query):
                records.append(record)
        return records

    async def health_check(self) -> bool:
        return await asyncio.to_thread(self.storage.health_check)


def create_invoice_repository(settings: Settings) -> InvoiceRepository:
    """Build the repository selected by settings.repository_backend."""
    if settings.repository_backend == "storage":
        logger.info(f"Using storage-backed invoice repository (bucket {settings.storage_bucket})")
        return StorageInvoiceRepository(settings)
    logger.info("Using in-memory invoice repository")
    return InMemoryInvoiceRepository()
