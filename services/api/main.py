"""FastAPI application for invoice extraction and invoice records.

Production-ready API with:
- Health and readiness checks for Kubernetes
- PDF-to-invoice extraction through the staged pipeline
- Invoice record CRUD with merge-updates
- Structured error responses
- Prometheus metrics for monitoring

Collaborators (pipeline, invoice service) are built in the lifespan handler
unless passed to create_app(), and closed again on shutdown.

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.api import metrics
from services.extraction.schema import CamelModel, StoredInvoice
from services.invoices.repository import create_invoice_repository
from services.invoices.service import InvoiceService
from services.pipeline.service import ExtractionOutcome, ExtractionPipeline, PipelineStage
from services.shared.config import Settings, get_settings
from services.shared.errors import (
    NotFoundError,
    PipelineError,
    SchemaValidationError,
    UnexpectedStageError,
)
from services.shared.logging_config import configure_logging

logger = logging.getLogger(__name__)

FAILURE_STATUS: dict[PipelineStage, int] = {
    PipelineStage.FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
    PipelineStage.INFERENCE_FAILED: status.HTTP_502_BAD_GATEWAY,
    PipelineStage.CONTENT_TYPE_MISMATCH: status.HTTP_400_BAD_REQUEST,
    PipelineStage.SCHEMA_INVALID: status.HTTP_400_BAD_REQUEST,
    PipelineStage.PARSE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    PipelineStage.NO_JSON_FOUND: status.HTTP_500_INTERNAL_SERVER_ERROR,
    PipelineStage.JSON_SYNTAX_INVALID: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    provider: str
    provider_ready: bool
    repository_ready: bool


class ExtractRequest(CamelModel):
    """Extraction request: a stored PDF reference and its original name."""

    file_id: str | None = None
    file_name: str | None = None


def _error_body(
    kind: str,
    message: str,
    stage: str | None = None,
    artifact_path: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "success": False,
        "error": {
            "kind": kind,
            "message": message,
            "stage": stage,
            "artifactPath": artifact_path,
            "details": details or {},
        },
    }


def _invoice_body(invoice: StoredInvoice) -> dict[str, Any]:
    return {"success": True, "data": invoice.model_dump(mode="json", by_alias=True)}


def _record_extraction(outcome: ExtractionOutcome, provider: str) -> None:
    metrics.extraction_runs_total.labels(stage=outcome.stage.value).inc()
    metrics.extraction_duration_seconds.observe(outcome.duration_seconds)
    if outcome.inference_seconds is not None:
        metrics.inference_duration_seconds.labels(provider=provider).observe(
            outcome.inference_seconds
        )


def create_app(
    settings: Settings | None = None,
    pipeline: ExtractionPipeline | None = None,
    invoice_service: InvoiceService | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Application settings (loaded from environment if omitted)
        pipeline: Extraction pipeline (built from settings at startup if omitted)
        invoice_service: Invoice record service (built from settings at startup if omitted)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings)

        owned_pipeline = pipeline is None
        app.state.pipeline = pipeline or ExtractionPipeline.from_settings(settings)
        app.state.invoice_service = invoice_service or InvoiceService(
            create_invoice_repository(settings)
        )
        logger.info(
            f"{settings.service_name} {settings.service_version} started "
            f"(provider: {app.state.pipeline.inference.provider_name})"
        )

        try:
            yield
        finally:
            if owned_pipeline:
                await app.state.pipeline.aclose()
            logger.info(f"{settings.service_name} stopped")

    app = FastAPI(
        title="Invoice Extraction Service",
        description="Extracts structured invoice records from PDF documents",
        version=settings.service_version,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Middleware to collect request metrics.

        Tracks:
        - Request count by method, endpoint, and status
        - Request duration by method and endpoint
        """
        # Skip metrics for /metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Route template keeps invoice ids out of the label values
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        metrics.http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
        ).inc()

        metrics.http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        issues = [
            {"path": ".".join(str(p) for p in error["loc"]), "reason": error["msg"]}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("invalid_request", "Malformed request", details={"issues": issues}),
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(exc.kind, exc.message, details=exc.details),
        )

    @app.exception_handler(SchemaValidationError)
    async def schema_error_handler(request: Request, exc: SchemaValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(exc.kind, exc.message, details=exc.details),
        )

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        logger.error(f"Unhandled pipeline error on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(exc.kind, exc.message, details=exc.details),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check() -> HealthResponse:
        """Health check endpoint for liveness probe.

        Returns:
            Health status information
        """
        return HealthResponse(
            status="healthy", version=settings.service_version, service=settings.service_name
        )

    @app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
    async def readiness_check(request: Request, response: Response) -> ReadinessResponse:
        """Readiness check endpoint for Kubernetes readiness probe.

        Ready once the configured inference provider passes its health check
        (credentials, or a reachable server with the model for Ollama) and the
        invoice repository backend is reachable.

        Returns:
            Readiness status
        """
        inference = request.app.state.pipeline.inference
        service: InvoiceService = request.app.state.invoice_service
        provider_ready = await inference.health_check()
        repository_ready = await service.health_check()
        ready = provider_ready and repository_ready
        if not ready:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(
            ready=ready,
            provider=inference.provider_name,
            provider_ready=provider_ready,
            repository_ready=repository_ready,
        )

    @app.get("/metrics", tags=["Monitoring"])
    def get_metrics() -> Response:
        """Prometheus metrics endpoint.

        Returns:
            Prometheus metrics in text format
        """
        metrics_data, content_type = metrics.get_metrics()
        return Response(content=metrics_data, media_type=content_type)

    @app.post("/extract", tags=["Extraction"])
    async def extract_invoice(request: Request, body: ExtractRequest) -> JSONResponse:
        """Extract a structured invoice record from a stored PDF.

        The document is fetched from `fileId`, its text layer extracted and sent
        to the configured model, and the reply recovered and validated.

        ## Usage Example

        ```bash
        curl -X POST "http://localhost:8000/extract" \\
          -H "Content-Type: application/json" \\
          -d '{"fileId": "https://files.example.com/inv-001.pdf", "fileName": "inv-001.pdf"}'
        ```

        ## Error Handling

        - Returns 400 for missing input, a non-PDF resource or a schema-invalid record
        - Returns 502 if the document source or the model provider fails
        - Returns 500 if the PDF is unreadable, the reply holds no parseable JSON
          or a stage failed unexpectedly (kind `internal_error`)

        Failure bodies carry `kind`, `stage` and, where one was preserved,
        `artifactPath` pointing at the offending input.
        """
        if not body.file_id or not body.file_name:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=_error_body("missing_input", "Missing fileId or fileName"),
            )

        pipeline: ExtractionPipeline = request.app.state.pipeline
        outcome = await pipeline.run(body.file_id, body.file_name)
        _record_extraction(outcome, pipeline.inference.provider_name)

        if outcome.success and outcome.record is not None:
            return JSONResponse(content={"success": True, "data": outcome.record.to_wire()})

        error = outcome.error
        if error is None:
            logger.error(f"Extraction for {body.file_name} failed without an error description")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=_error_body(
                    "internal_error", "Extraction failed", stage=outcome.stage.value
                ),
            )
        if error.kind == UnexpectedStageError.kind:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        else:
            status_code = FAILURE_STATUS.get(outcome.stage, status.HTTP_500_INTERNAL_SERVER_ERROR)
        return JSONResponse(
            status_code=status_code,
            content=_error_body(
                error.kind,
                error.message,
                stage=outcome.stage.value,
                artifact_path=error.artifact_path,
                details=error.details,
            ),
        )

    @app.get("/invoices", tags=["Invoices"])
    async def list_invoices(
        request: Request,
        q: str | None = Query(None, description="Substring of vendor name or invoice number"),
    ) -> dict[str, Any]:
        """List stored invoices, optionally filtered."""
        service: InvoiceService = request.app.state.invoice_service
        invoices = await service.list_invoices(q)
        return {
            "success": True,
            "data": [invoice.model_dump(mode="json", by_alias=True) for invoice in invoices],
        }

    @app.post("/invoices", status_code=status.HTTP_201_CREATED, tags=["Invoices"])
    async def create_invoice(
        request: Request,
        payload: Any = Body(...),  # noqa: B008
    ) -> dict[str, Any]:
        """Validate and store an invoice record.

        Accepts the record directly or wrapped as `{"data": record}`. A missing
        `invoice.total` is derived from subtotal and tax percent.
        """
        service: InvoiceService = request.app.state.invoice_service
        try:
            invoice = await service.create(payload)
        except SchemaValidationError:
            metrics.invoice_operations_total.labels(operation="create", status="failed").inc()
            raise
        metrics.invoice_operations_total.labels(operation="create", status="success").inc()
        return _invoice_body(invoice)

    @app.get("/invoices/{invoice_id}", tags=["Invoices"])
    async def get_invoice(request: Request, invoice_id: str) -> dict[str, Any]:
        """Fetch one invoice record."""
        service: InvoiceService = request.app.state.invoice_service
        return _invoice_body(await service.get(invoice_id))

    @app.put("/invoices/{invoice_id}", tags=["Invoices"])
    async def update_invoice(
        request: Request,
        invoice_id: str,
        payload: Any = Body(...),  # noqa: B008
    ) -> dict[str, Any]:
        """Merge a partial record into a stored invoice.

        `vendor` and `invoice` are merged key by key; every other field,
        including `invoice.lineItems`, is replaced. The merged record is
        validated as a whole before anything is written.
        """
        service: InvoiceService = request.app.state.invoice_service
        try:
            invoice = await service.update(invoice_id, payload)
        except SchemaValidationError:
            metrics.invoice_operations_total.labels(operation="update", status="failed").inc()
            raise
        metrics.invoice_operations_total.labels(operation="update", status="success").inc()
        return _invoice_body(invoice)

    @app.delete("/invoices/{invoice_id}", tags=["Invoices"])
    async def delete_invoice(request: Request, invoice_id: str) -> dict[str, Any]:
        """Delete an invoice record. The source document is not touched."""
        service: InvoiceService = request.app.state.invoice_service
        if not await service.delete(invoice_id):
            raise NotFoundError(invoice_id)
        metrics.invoice_operations_total.labels(operation="delete", status="success").inc()
        return {"success": True}

    return app


app = create_app()
