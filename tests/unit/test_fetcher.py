"""Unit tests for ContentFetcher.

HTTP traffic is served by httpx.MockTransport; no network access.
"""

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from services.ingest.fetcher import ContentFetcher
from services.shared.artifacts import ArtifactStore
from services.shared.config import Settings
from services.shared.errors import FetchError, UnexpectedContentTypeError, UpstreamStatusError

PDF_URL = "https://files.example.com/inv-001.pdf"

Handler = Callable[[httpx.Request], httpx.Response]
FetcherFactory = Callable[[Handler], ContentFetcher]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with artifacts in a per-test directory."""
    return Settings(artifact_dir=tmp_path / "artifacts")


@pytest.fixture
def make_fetcher(settings: Settings) -> FetcherFactory:
    """Build a fetcher whose client is served by the given handler."""

    def _make(handler: Handler) -> ContentFetcher:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            follow_redirects=True,
            max_redirects=settings.fetch_max_redirects,
        )
        return ContentFetcher(settings, ArtifactStore(settings), client=client)

    return _make


class TestFetchSuccess:
    """PDF responses pass through untouched."""

    @pytest.mark.asyncio
    async def test_fetch_pdf(self, make_fetcher: FetcherFactory) -> None:
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=b"%PDF-1.4 ...", headers={"content-type": "application/pdf"}
            )
        )

        document = await fetcher.fetch(PDF_URL, "inv-001.pdf")

        assert document.content == b"%PDF-1.4 ..."
        assert document.content_type == "application/pdf"
        assert document.status_code == 200
        assert document.url == PDF_URL
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_content_type_with_parameters(self, make_fetcher: FetcherFactory) -> None:
        """Any content type mentioning pdf is accepted."""
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=b"%PDF", headers={"content-type": "application/x-pdf; charset=binary"}
            )
        )

        document = await fetcher.fetch(PDF_URL, "inv-001.pdf")

        assert document.content == b"%PDF"

    @pytest.mark.asyncio
    async def test_follows_redirects(self, make_fetcher: FetcherFactory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/short":
                return httpx.Response(302, headers={"location": PDF_URL})
            return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})

        fetcher = make_fetcher(handler)

        document = await fetcher.fetch("https://files.example.com/short", "inv.pdf")

        assert document.content == b"%PDF"


class TestFetchFailures:
    """Transport, status and content-type failures are distinguished."""

    @pytest.mark.asyncio
    async def test_html_body_saved_as_debug_artifact(
        self, make_fetcher: FetcherFactory, settings: Settings
    ) -> None:
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=b"<html>Sign in</html>", headers={"content-type": "text/html"}
            )
        )

        with pytest.raises(UnexpectedContentTypeError) as exc_info:
            await fetcher.fetch(PDF_URL, "inv-001.pdf")

        error = exc_info.value
        assert error.kind == "unexpected_content_type"
        assert error.details["contentType"] == "text/html"
        assert error.artifact_path is not None
        assert error.artifact_path.suffix == ".debug"
        assert error.artifact_path.read_bytes() == b"<html>Sign in</html>"
        assert error.artifact_path.parent == settings.artifact_dir

    @pytest.mark.asyncio
    async def test_missing_content_type_is_unknown(self, make_fetcher: FetcherFactory) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"???"))

        with pytest.raises(UnexpectedContentTypeError) as exc_info:
            await fetcher.fetch(PDF_URL, "inv-001.pdf")

        assert exc_info.value.content_type == "unknown"

    @pytest.mark.asyncio
    async def test_non_200_status(self, make_fetcher: FetcherFactory) -> None:
        fetcher = make_fetcher(
            lambda request: httpx.Response(404, text="gone", headers={"content-type": "text/plain"})
        )

        with pytest.raises(UpstreamStatusError) as exc_info:
            await fetcher.fetch(PDF_URL, "inv-001.pdf")

        assert exc_info.value.status_code == 404
        assert exc_info.value.details["status"] == 404
        assert exc_info.value.details["contentType"] == "text/plain"

    @pytest.mark.asyncio
    async def test_transport_error(self, make_fetcher: FetcherFactory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        fetcher = make_fetcher(handler)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(PDF_URL, "inv-001.pdf")

        assert exc_info.value.kind == "fetch_error"
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_redirect_loop_is_fetch_error(self, make_fetcher: FetcherFactory) -> None:
        fetcher = make_fetcher(
            lambda request: httpx.Response(302, headers={"location": str(request.url)})
        )

        with pytest.raises(FetchError):
            await fetcher.fetch(PDF_URL, "inv-001.pdf")
