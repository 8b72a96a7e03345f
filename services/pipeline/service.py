"""Invoice extraction pipeline.

One run walks a fixed sequence of stages:

    START -> FETCHED -> TEXT_EXTRACTED -> PROMPT_BUILT -> INFERENCE_RETURNED
          -> JSON_RECOVERED -> SYNTAX_VALID -> SCHEMA_VALID -> DONE

Any stage failure ends the run in the failure state named for that stage.
There is no retry and no backtracking; the caller gets an ExtractionOutcome
describing what happened, never a raised stage exception. Inputs that caused
a failure (non-PDF bodies, broken PDFs, model replies) are kept as artifacts.
"""

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from services.extraction.base import InferenceProvider
from services.extraction.factory import create_inference_provider
from services.extraction.json_recovery import recover_json_candidate
from services.extraction.prompt import build_extraction_prompt
from services.extraction.schema import InvoiceRecord
from services.extraction.validation import ensure_valid_invoice, parse_candidate
from services.ingest.fetcher import ContentFetcher
from services.ingest.pdf_text import extract_text_async
from services.shared.artifacts import ArtifactStore
from services.shared.config import Settings
from services.shared.errors import (
    DocumentParseError,
    FetchError,
    InferenceError,
    JsonSyntaxError,
    NoJsonFoundError,
    PipelineError,
    SchemaValidationError,
    UnexpectedContentTypeError,
    UnexpectedStageError,
    UpstreamStatusError,
)

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """States of a single extraction run."""

    START = "start"
    FETCHED = "fetched"
    TEXT_EXTRACTED = "text_extracted"
    PROMPT_BUILT = "prompt_built"
    INFERENCE_RETURNED = "inference_returned"
    JSON_RECOVERED = "json_recovered"
    SYNTAX_VALID = "syntax_valid"
    SCHEMA_VALID = "schema_valid"
    DONE = "done"

    # Terminal failure states
    FETCH_FAILED = "fetch_failed"
    CONTENT_TYPE_MISMATCH = "content_type_mismatch"
    PARSE_FAILED = "parse_failed"
    INFERENCE_FAILED = "inference_failed"
    NO_JSON_FOUND = "no_json_found"
    JSON_SYNTAX_INVALID = "json_syntax_invalid"
    SCHEMA_INVALID = "schema_invalid"


FAILURE_STAGES: dict[type[PipelineError], PipelineStage] = {
    FetchError: PipelineStage.FETCH_FAILED,
    UpstreamStatusError: PipelineStage.FETCH_FAILED,
    UnexpectedContentTypeError: PipelineStage.CONTENT_TYPE_MISMATCH,
    DocumentParseError: PipelineStage.PARSE_FAILED,
    InferenceError: PipelineStage.INFERENCE_FAILED,
    NoJsonFoundError: PipelineStage.NO_JSON_FOUND,
    JsonSyntaxError: PipelineStage.JSON_SYNTAX_INVALID,
    SchemaValidationError: PipelineStage.SCHEMA_INVALID,
}

# Failure state of the stage that runs after each completed stage
NEXT_STAGE_FAILURES: dict[PipelineStage, PipelineStage] = {
    PipelineStage.START: PipelineStage.FETCH_FAILED,
    PipelineStage.FETCHED: PipelineStage.PARSE_FAILED,
    PipelineStage.TEXT_EXTRACTED: PipelineStage.INFERENCE_FAILED,
    PipelineStage.PROMPT_BUILT: PipelineStage.INFERENCE_FAILED,
    PipelineStage.INFERENCE_RETURNED: PipelineStage.NO_JSON_FOUND,
    PipelineStage.JSON_RECOVERED: PipelineStage.JSON_SYNTAX_INVALID,
    PipelineStage.SYNTAX_VALID: PipelineStage.SCHEMA_INVALID,
}


class PipelineFailure(BaseModel):
    """Structured description of a failed run.

    Attributes:
        kind: Machine-distinguishable error kind (e.g. 'no_json_found')
        message: Human-readable explanation
        artifact_path: Preserved diagnostic artifact, if any
        details: Stage-specific context (status, content type, issues, previews)
    """

    kind: str
    message: str
    artifact_path: str | None = None
    details: dict[str, Any] = {}


class ExtractionOutcome(BaseModel):
    """Result of one extraction run.

    Attributes:
        success: Whether a validated record was produced
        stage: Terminal state (DONE or a failure state)
        last_completed: Last stage reached before the run ended
        record: Validated record on success
        error: Failure description otherwise
        duration_seconds: Wall time of the run
        inference_seconds: Time spent waiting for the model, if it was called
    """

    success: bool
    stage: PipelineStage
    last_completed: PipelineStage
    record: InvoiceRecord | None = None
    error: PipelineFailure | None = None
    duration_seconds: float = 0.0
    inference_seconds: float | None = None


class ExtractionPipeline:
    """Runs fetch -> text -> prompt -> inference -> recover -> validate.

    Collaborators are passed in explicitly; from_settings() builds the
    default set and aclose() releases their network resources.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: ContentFetcher,
        inference: InferenceProvider,
        artifacts: ArtifactStore,
    ) -> None:
        """Initialize extraction pipeline.

        Args:
            settings: Application settings (preview length)
            fetcher: Source document fetcher
            inference: Generative model provider
            artifacts: Store for diagnostic artifacts
        """
        self.settings = settings
        self.fetcher = fetcher
        self.inference = inference
        self.artifacts = artifacts

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractionPipeline":
        """Build a pipeline with the configured fetcher and inference provider."""
        artifacts = ArtifactStore(settings)
        return cls(
            settings=settings,
            fetcher=ContentFetcher(settings, artifacts),
            inference=create_inference_provider(settings),
            artifacts=artifacts,
        )

    async def aclose(self) -> None:
        """Close the fetcher and inference provider clients."""
        await self.fetcher.aclose()
        await self.inference.aclose()

    async def run(self, file_id: str, file_name: str) -> ExtractionOutcome:
        """Extract a validated invoice record from a stored PDF.

        Args:
            file_id: Document reference (URL)
            file_name: Original file name

        Returns:
            ExtractionOutcome; success=False carries the failing stage and error
        """
        start_time = time.monotonic()
        stage = PipelineStage.START
        reply: str | None = None
        inference_seconds: float | None = None

        try:
            document = await self.fetcher.fetch(file_id, file_name)
            stage = PipelineStage.FETCHED

            text = await self._extract_text(document.content, file_name)
            stage = PipelineStage.TEXT_EXTRACTED

            prompt = build_extraction_prompt(file_id, file_name, text)
            stage = PipelineStage.PROMPT_BUILT

            inference_start = time.monotonic()
            try:
                reply = await self.inference.generate(prompt)
            finally:
                inference_seconds = time.monotonic() - inference_start
            stage = PipelineStage.INFERENCE_RETURNED

            candidate = recover_json_candidate(reply, self.settings.preview_chars)
            stage = PipelineStage.JSON_RECOVERED

            parsed = parse_candidate(candidate, self.settings.preview_chars)
            stage = PipelineStage.SYNTAX_VALID

            record = ensure_valid_invoice(
                parsed, candidate_preview=candidate[: self.settings.preview_chars]
            )
            stage = PipelineStage.SCHEMA_VALID

        except PipelineError as e:
            self._preserve_reply(e, reply)
            return self._failure(e, stage, start_time, inference_seconds)
        except Exception as e:
            logger.exception(f"Unexpected error after {stage.value} for {file_name}")
            error = UnexpectedStageError(e)
            self._preserve_reply(error, reply)
            return self._failure(
                error, stage, start_time, inference_seconds, NEXT_STAGE_FAILURES[stage]
            )

        duration = time.monotonic() - start_time
        logger.info(
            f"Extracted invoice {record.invoice.number} from {file_name} in {duration:.2f}s"
        )
        return ExtractionOutcome(
            success=True,
            stage=PipelineStage.DONE,
            last_completed=stage,
            record=record,
            duration_seconds=duration,
            inference_seconds=inference_seconds,
        )

    async def _extract_text(self, content: bytes, file_name: str) -> str:
        try:
            text = await extract_text_async(content)
        except DocumentParseError as e:
            e.artifact_path = self.artifacts.save(file_name, content, suffix=".pdf")
            raise

        if not text:
            logger.warning(f"No extractable text in {file_name}; continuing with empty text")
        return text

    def _preserve_reply(self, error: PipelineError, reply: str | None) -> None:
        if reply is not None and error.artifact_path is None:
            error.artifact_path = self.artifacts.save("ai-reply", reply, suffix=".txt")

    def _failure(
        self,
        error: PipelineError,
        last_completed: PipelineStage,
        start_time: float,
        inference_seconds: float | None,
        terminal: PipelineStage | None = None,
    ) -> ExtractionOutcome:
        terminal = terminal or FAILURE_STAGES.get(type(error), PipelineStage.FETCH_FAILED)
        artifact = str(error.artifact_path) if isinstance(error.artifact_path, Path) else None
        logger.warning(
            f"Extraction ended in {terminal.value} after {last_completed.value}: "
            f"{error.message}" + (f" (artifact: {artifact})" if artifact else "")
        )
        return ExtractionOutcome(
            success=False,
            stage=terminal,
            last_completed=last_completed,
            error=PipelineFailure(
                kind=error.kind,
                message=error.message,
                artifact_path=artifact,
                details=error.details,
            ),
            duration_seconds=time.monotonic() - start_time,
            inference_seconds=inference_seconds,
        )
