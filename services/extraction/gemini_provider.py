"""Gemini-based inference provider.

Uses the Google Gen AI SDK async client for plain-text generation with the
configured decoding parameters (temperature 0 for deterministic output).

Based on google-genai documentation:
https://googleapis.github.io/python-genai/
"""

import logging
import os

from google import genai
from google.genai import errors, types
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.base import InferenceProvider
from services.shared.config import Settings
from services.shared.errors import InferenceError

logger = logging.getLogger(__name__)


class GeminiInferenceProvider(InferenceProvider):
    """Gemini inference provider.

    Requires APP_GEMINI_API_KEY or GEMINI_API_KEY.
    """

    def __init__(self, settings: Settings, client: genai.Client | None = None) -> None:
        """Initialize Gemini provider.

        Args:
            settings: Application settings
            client: Preconfigured SDK client (mainly for tests)
        """
        super().__init__(settings)
        self._model = settings.gemini_model
        self._client = client

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'gemini'
        """
        return "gemini"

    def _api_key(self) -> str | None:
        return self.settings.gemini_api_key or os.getenv("GEMINI_API_KEY")

    def is_available(self) -> bool:
        """Check if a Gemini API key is configured.

        Returns:
            True if an API key is set in settings or environment
        """
        return self._client is not None or bool(self._api_key())

    async def generate(self, prompt: str) -> str:
        """Generate a plain-text reply with Gemini.

        Args:
            prompt: Complete instruction prompt

        Returns:
            Raw reply text

        Raises:
            InferenceError: Missing API key, API failure or empty reply
        """
        if not self.is_available():
            raise InferenceError(self.provider_name, "GEMINI_API_KEY is not configured")

        if self._client is None:
            self._client = genai.Client(api_key=self._api_key())

        try:
            response = await self._generate_with_retry(prompt)
        except Exception as e:
            logger.error(f"Gemini generation failed: {e}")
            raise InferenceError(self.provider_name, "API call failed", e) from e

        text = response.text
        if not text:
            raise InferenceError(self.provider_name, "model returned an empty response")
        return text

    @retry(
        retry=retry_if_exception_type(errors.ServerError),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _generate_with_retry(self, prompt: str) -> types.GenerateContentResponse:
        """Call Gemini, retrying 5xx errors with exponential backoff and jitter."""
        if self._client is None:
            raise RuntimeError("Gemini client not initialized")

        config = types.GenerateContentConfig(
            temperature=self.generation_config.temperature,
            top_p=self.generation_config.top_p,
            top_k=self.generation_config.top_k,
            max_output_tokens=self.generation_config.max_output_tokens,
            response_mime_type=self.generation_config.response_mime_type,
        )
        return await self._client.aio.models.generate_content(
            model=self._model,
            contents=prompt,
            config=config,
        )

    async def aclose(self) -> None:
        """Close the SDK's async client; a new one is built on next use."""
        if self._client is not None:
            await self._client.aio.aclose()
            self._client = None
