"""Invoice data models shared by extraction, validation and persistence.

Wire format is camelCase JSON (fileId, taxPercent, lineItems); attributes
are snake_case. Numeric fields accept numeric-looking strings.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _coerce_numeric_string(value: Any) -> Any:
    """Turn numeric strings into numbers and blank strings into None."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped == "":
            return None
        try:
            return float(stripped)
        except ValueError:
            return value
    return value


class CamelModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase JSON keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )


class Vendor(CamelModel):
    """Issuer of the invoice."""

    name: str = Field(..., min_length=1, description="Vendor/supplier name")
    address: str | None = Field(None, description="Vendor postal address")
    tax_id: str | None = Field(None, description="Vendor tax registration number")


class LineItem(CamelModel):
    """Single invoice line. total ≈ unit_price × quantity is not enforced."""

    description: str = Field(..., min_length=1)
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    total: float = Field(..., ge=0)

    @field_validator("unit_price", "quantity", "total", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Any:
        """Accept numeric strings such as "12.50"."""
        return _coerce_numeric_string(v)


class InvoiceDetails(CamelModel):
    """Invoice header, amounts and lines."""

    number: str = Field(..., min_length=1, description="Invoice number")
    date: str = Field(..., min_length=1, description="Invoice date, ISO-like string")
    currency: str | None = Field(None, description="Currency code or symbol as printed")
    subtotal: float | None = Field(None, description="Amount before tax")
    tax_percent: float | None = Field(None, description="Tax rate in percent")
    total: float | None = Field(None, description="Amount including tax")
    po_number: str | None = Field(None, description="Purchase order number")
    po_date: str | None = Field(None, description="Purchase order date")
    line_items: list[LineItem] = Field(default_factory=list)

    @field_validator("subtotal", "tax_percent", "total", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Any:
        """Accept numeric strings; blank strings mean "not present"."""
        return _coerce_numeric_string(v)

    @field_validator("line_items", mode="before")
    @classmethod
    def default_line_items(cls, v: Any) -> Any:
        """Treat an explicit null like a missing list."""
        return [] if v is None else v


class InvoiceRecord(CamelModel):
    """Canonical invoice payload as produced by extraction and accepted on write.

    Timestamps are accepted so that stored records re-validate cleanly, but
    they are never copied from client input into storage.
    """

    file_id: str = Field(..., description="Reference to the source document (e.g. URL)")
    file_name: str = Field(..., min_length=1, description="Original file name")
    vendor: Vendor
    invoice: InvoiceDetails
    created_at: str | None = None
    updated_at: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape, omitting unset timestamps."""
        data = self.model_dump(mode="json", by_alias=True)
        for key in ("createdAt", "updatedAt"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class StoredInvoice(CamelModel):
    """Invoice record as held by the persistence gateway."""

    id: str
    file_id: str
    file_name: str
    vendor: Vendor
    invoice: InvoiceDetails
    created_at: datetime
    updated_at: datetime
