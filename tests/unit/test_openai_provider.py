"""Unit tests for OpenAIInferenceProvider.

AsyncOpenAI is patched; no API calls are made.
"""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from services.extraction.openai_provider import OpenAIInferenceProvider
from services.shared.config import Settings
from services.shared.errors import InferenceError


def make_completion(content: str | None) -> MagicMock:
    """Chat completion response with a single choice."""
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


@pytest.fixture
def provider() -> OpenAIInferenceProvider:
    return OpenAIInferenceProvider(Settings(inference_provider="openai"))


@pytest.fixture
def mock_openai() -> Generator[MagicMock, None, None]:
    """Patched AsyncOpenAI class returning a client with a canned completion."""
    with patch("services.extraction.openai_provider.AsyncOpenAI") as mock_cls:
        client = mock_cls.return_value
        client.api_key = "test-key"
        client.chat.completions.create = AsyncMock(return_value=make_completion('{"a": 1}'))
        client.close = AsyncMock()
        yield mock_cls


def test_provider_name(provider: OpenAIInferenceProvider) -> None:
    assert provider.provider_name == "openai"


@patch.dict("os.environ", {}, clear=True)
def test_not_available_without_key(provider: OpenAIInferenceProvider) -> None:
    assert provider.is_available() is False


@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_available_with_key(provider: OpenAIInferenceProvider) -> None:
    assert provider.is_available() is True


@pytest.mark.asyncio
@patch.dict("os.environ", {}, clear=True)
async def test_generate_without_key_raises(provider: OpenAIInferenceProvider) -> None:
    with pytest.raises(InferenceError, match="OPENAI_API_KEY"):
        await provider.generate("prompt")


@pytest.mark.asyncio
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_generate_returns_reply(
    provider: OpenAIInferenceProvider, mock_openai: MagicMock
) -> None:
    """Should return raw reply and forward decoding parameters."""
    reply = await provider.generate("Extract the invoice")

    assert reply == '{"a": 1}'
    kwargs = mock_openai.return_value.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.0
    assert kwargs["top_p"] == 0.95
    assert kwargs["max_tokens"] == 8192
    assert kwargs["messages"][-1] == {"role": "user", "content": "Extract the invoice"}


@pytest.mark.asyncio
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_client_reused_across_calls(
    provider: OpenAIInferenceProvider, mock_openai: MagicMock
) -> None:
    await provider.generate("one")
    await provider.generate("two")

    mock_openai.assert_called_once_with(api_key="test-key")


@pytest.mark.asyncio
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_empty_content_raises(
    provider: OpenAIInferenceProvider, mock_openai: MagicMock
) -> None:
    mock_openai.return_value.chat.completions.create.return_value = make_completion(None)

    with pytest.raises(InferenceError, match="empty"):
        await provider.generate("prompt")


@pytest.mark.asyncio
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_no_choices_raises(
    provider: OpenAIInferenceProvider, mock_openai: MagicMock
) -> None:
    mock_openai.return_value.chat.completions.create.return_value = MagicMock(choices=[])

    with pytest.raises(InferenceError, match="no choices"):
        await provider.generate("prompt")


@pytest.mark.asyncio
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_api_failure_raises(
    provider: OpenAIInferenceProvider, mock_openai: MagicMock
) -> None:
    """Non-transient errors are not retried."""
    create = mock_openai.return_value.chat.completions.create
    create.side_effect = ValueError("bad request")

    with pytest.raises(InferenceError) as exc_info:
        await provider.generate("prompt")

    assert exc_info.value.details["provider"] == "openai"
    create.assert_awaited_once()


@pytest.mark.asyncio
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_aclose_closes_client(
    provider: OpenAIInferenceProvider, mock_openai: MagicMock
) -> None:
    await provider.generate("prompt")

    await provider.aclose()

    mock_openai.return_value.close.assert_awaited_once()
    assert provider._client is None
