"""Syntactic and semantic validation of invoice payloads.

Two separate steps with separate error kinds:

- parse_candidate: strict JSON parse of the recovered candidate
- validate_invoice: schema check and coercion into InvoiceRecord

validate_invoice returns a tagged ValidationResult so callers decide how to
report failures; ensure_valid_invoice raises SchemaValidationError instead.
"""

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from services.extraction.schema import InvoiceRecord
from services.shared.errors import JsonSyntaxError, SchemaValidationError


class FieldIssue(BaseModel):
    """Single validation failure.

    Attributes:
        path: Dotted field path in wire naming (e.g. invoice.lineItems.0.unitPrice)
        reason: Human-readable explanation
    """

    path: str
    reason: str


class ValidationResult(BaseModel):
    """Outcome of validating a payload against the invoice schema.

    Attributes:
        ok: Whether validation succeeded
        record: Validated record (None on failure)
        issues: Field-level failures (empty on success)
    """

    ok: bool
    record: InvoiceRecord | None = None
    issues: list[FieldIssue] = []


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name} is not valid JSON")


def parse_candidate(candidate: str, preview_chars: int = 1200) -> Any:
    """Strictly parse a JSON candidate.

    NaN and Infinity literals are rejected.

    Args:
        candidate: Substring recovered from the model reply
        preview_chars: Length of the candidate preview attached to the error

    Returns:
        Parsed JSON value

    Raises:
        JsonSyntaxError: If the candidate is not valid JSON
    """
    try:
        return json.loads(candidate, parse_constant=_reject_constant)
    except ValueError as e:
        raise JsonSyntaxError(str(e), candidate[:preview_chars]) from e


def _issues_from(error: ValidationError) -> list[FieldIssue]:
    issues = []
    for detail in error.errors(include_url=False):
        path = ".".join(str(part) for part in detail["loc"]) or "<root>"
        issues.append(FieldIssue(path=path, reason=detail["msg"]))
    return issues


def validate_invoice(data: Any) -> ValidationResult:
    """Validate and coerce a parsed payload into an InvoiceRecord.

    Args:
        data: Parsed JSON value

    Returns:
        ValidationResult with the record or the list of field issues
    """
    if not isinstance(data, dict):
        return ValidationResult(
            ok=False,
            issues=[FieldIssue(path="<root>", reason="Expected a JSON object")],
        )

    try:
        record = InvoiceRecord.model_validate(data)
    except ValidationError as e:
        return ValidationResult(ok=False, issues=_issues_from(e))

    return ValidationResult(ok=True, record=record)


def ensure_valid_invoice(data: Any, candidate_preview: str | None = None) -> InvoiceRecord:
    """Validate a payload, raising on failure.

    Args:
        data: Parsed JSON value
        candidate_preview: Optional raw text preview to attach to the error

    Returns:
        Validated InvoiceRecord

    Raises:
        SchemaValidationError: With the structured list of field issues
    """
    result = validate_invoice(data)
    if not result.ok or result.record is None:
        raise SchemaValidationError(
            [issue.model_dump() for issue in result.issues],
            candidate_preview=candidate_preview,
        )
    return result.record
