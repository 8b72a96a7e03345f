"""Exception hierarchy for invoice extraction and persistence.

Every stage of the extraction pipeline raises a subclass of PipelineError.
The pipeline boundary converts these into a structured failure description
(kind, message, artifact path, details) instead of letting them escape.
"""

from pathlib import Path
from typing import Any


class PipelineError(Exception):
    """Base exception for all invoice pipeline errors.

    Attributes:
        kind: Machine-distinguishable error identifier
        message: Human-readable description
        artifact_path: Preserved diagnostic artifact, if one was written
        details: Extra structured context for the caller
    """

    kind = "pipeline_error"

    def __init__(
        self,
        message: str,
        artifact_path: Path | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.artifact_path = artifact_path
        self.details = details or {}
        super().__init__(message)


class FetchError(PipelineError):
    """Raised when the transport call for the source document fails."""

    kind = "fetch_error"

    def __init__(self, url: str, original_error: Exception) -> None:
        self.url = url
        self.original_error = original_error
        super().__init__(
            f"Failed to fetch document from {url}: {original_error}",
            details={"url": url, "error_type": type(original_error).__name__},
        )


class UpstreamStatusError(PipelineError):
    """Raised when the document source answers with a non-success status."""

    kind = "upstream_status_error"

    def __init__(self, url: str, status_code: int, content_type: str) -> None:
        self.url = url
        self.status_code = status_code
        self.content_type = content_type
        super().__init__(
            f"Document source returned status {status_code}",
            details={"url": url, "status": status_code, "contentType": content_type},
        )


class UnexpectedContentTypeError(PipelineError):
    """Raised when the fetched resource is not a PDF."""

    kind = "unexpected_content_type"

    def __init__(self, content_type: str, artifact_path: Path | None) -> None:
        self.content_type = content_type
        super().__init__(
            f"Fetched resource is not a PDF (content-type: {content_type})",
            artifact_path=artifact_path,
            details={"contentType": content_type},
        )


class DocumentParseError(PipelineError):
    """Raised when the byte buffer is not a readable PDF."""

    kind = "document_parse_error"

    def __init__(self, reason: str, original_error: Exception | None = None) -> None:
        self.reason = reason
        self.original_error = original_error
        message = f"Failed to parse PDF: {reason}"
        if original_error:
            message += f" (Original error: {original_error})"
        super().__init__(message, details={"reason": reason})


class InferenceError(PipelineError):
    """Raised when the inference provider fails to return text."""

    kind = "inference_error"

    def __init__(
        self,
        provider: str,
        reason: str,
        original_error: Exception | None = None,
    ) -> None:
        self.provider = provider
        self.original_error = original_error
        message = f"Inference via '{provider}' failed: {reason}"
        if original_error:
            message += f" (Original error: {original_error})"
        super().__init__(message, details={"provider": provider})


class NoJsonFoundError(PipelineError):
    """Raised when no JSON object can be located in the model reply."""

    kind = "no_json_found"

    def __init__(self, raw_preview: str) -> None:
        super().__init__(
            "Invalid JSON from model (no JSON found)",
            details={"rawPreview": raw_preview},
        )


class JsonSyntaxError(PipelineError):
    """Raised when the recovered candidate is not valid JSON."""

    kind = "json_syntax_error"

    def __init__(self, parse_error: str, candidate_preview: str) -> None:
        self.parse_error = parse_error
        super().__init__(
            f"Failed to parse JSON from model: {parse_error}",
            details={"parseError": parse_error, "rawPreview": candidate_preview},
        )


class SchemaValidationError(PipelineError):
    """Raised when a payload does not satisfy the invoice schema.

    Attributes:
        issues: List of {"path": ..., "reason": ...} entries
    """

    kind = "schema_validation_error"

    def __init__(self, issues: list[dict[str, str]], candidate_preview: str | None = None) -> None:
        self.issues = issues
        details: dict[str, Any] = {"issues": issues}
        if candidate_preview is not None:
            details["rawPreview"] = candidate_preview
        summary = "; ".join(f"{issue['path']}: {issue['reason']}" for issue in issues[:5])
        super().__init__(f"Validation failed: {summary}", details=details)


class NotFoundError(PipelineError):
    """Raised when an invoice record does not exist."""

    kind = "not_found"

    def __init__(self, invoice_id: str) -> None:
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}", details={"id": invoice_id})


class ConcurrentModificationError(PipelineError):
    """Reserved for detecting lost updates on the same record.

    Updates are currently last-writer-wins, so nothing raises this yet.
    """

    kind = "concurrent_modification"

    def __init__(self, invoice_id: str) -> None:
        self.invoice_id = invoice_id
        super().__init__(
            f"Invoice {invoice_id} was modified concurrently",
            details={"id": invoice_id},
        )


__all__ = [
    "PipelineError",
    "FetchError",
    "UpstreamStatusError",
    "UnexpectedContentTypeError",
    "DocumentParseError",
    "InferenceError",
    "NoJsonFoundError",
    "JsonSyntaxError",
    "SchemaValidationError",
    "NotFoundError",
    "ConcurrentModificationError",
]


class UnexpectedStageError(PipelineError):
    """Wraps an exception outside this hierarchy that escaped a pipeline stage."""

    kind = "internal_error"

    def __init__(self, original_error: Exception) -> None:
        self.original_error = original_error
        super().__init__(
            f"Unexpected {type(original_error).__name__}: {original_error}",
            details={"exception": type(original_error).__name__},
        )
