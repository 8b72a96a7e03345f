"""Source document retrieval.

Downloads the PDF behind a document reference (typically a public blob URL)
and checks transport success, HTTP status and content type before anything
tries to decode the bytes.

Based on HTTPX async client documentation:
https://www.python-httpx.org/async/
"""

import logging

import httpx
from pydantic import BaseModel

from services.shared.artifacts import ArtifactStore
from services.shared.config import Settings
from services.shared.errors import FetchError, UnexpectedContentTypeError, UpstreamStatusError

logger = logging.getLogger(__name__)


class FetchedDocument(BaseModel):
    """Raw document retrieved from the content source.

    Attributes:
        url: Reference the document was fetched from
        content: Response body
        content_type: Declared content type ("unknown" if missing)
        status_code: HTTP status of the final response
    """

    url: str
    content: bytes
    content_type: str
    status_code: int


class ContentFetcher:
    """Fetches source documents over HTTP.

    Transport errors are reported, not retried: the caller decides whether a
    second attempt makes sense.
    """

    def __init__(
        self,
        settings: Settings,
        artifacts: ArtifactStore,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize content fetcher.

        Args:
            settings: Application settings (timeout, redirect cap)
            artifacts: Store for non-PDF response bodies
            client: Preconfigured HTTP client (mainly for tests)
        """
        self.settings = settings
        self.artifacts = artifacts
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=settings.fetch_max_redirects,
            timeout=settings.fetch_timeout_seconds,
        )

    async def fetch(self, file_id: str, file_name: str) -> FetchedDocument:
        """Retrieve the document and validate status and content type.

        Args:
            file_id: Document reference (URL)
            file_name: Client-facing file name, used to name debug artifacts

        Returns:
            FetchedDocument with the PDF bytes

        Raises:
            FetchError: Transport failure (DNS, timeout, reset, redirect loop)
            UpstreamStatusError: Final status is not 200
            UnexpectedContentTypeError: Body is not declared as a PDF
        """
        try:
            response = await self._client.get(file_id)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            logger.error(f"Fetch error for {file_id}: {e}")
            raise FetchError(file_id, e) from e

        content_type = response.headers.get("content-type") or "unknown"

        if response.status_code != httpx.codes.OK:
            logger.error(
                f"Document source returned {response.status_code} for {file_id} "
                f"(content-type: {content_type})"
            )
            raise UpstreamStatusError(file_id, response.status_code, content_type)

        if "pdf" not in content_type.lower():
            debug_path = self.artifacts.save(file_name, response.content, suffix=".debug")
            logger.error(
                f"Fetched resource is not a PDF. content-type: {content_type}, "
                f"saved to {debug_path}"
            )
            raise UnexpectedContentTypeError(content_type, debug_path)

        logger.info(f"Fetched {len(response.content)} bytes from {file_id}")
        return FetchedDocument(
            url=file_id,
            content=response.content,
            content_type=content_type,
            status_code=response.status_code,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
