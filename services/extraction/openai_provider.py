"""OpenAI-based inference provider.

Uses the OpenAI chat completions API in plain-text mode. OpenAI has no top-k
parameter, so only temperature, top_p and the token ceiling are forwarded.

Includes retry logic with exponential backoff for transient API errors.
"""

import logging
import os
from typing import Any

from openai import APIConnectionError, AsyncOpenAI, InternalServerError, RateLimitError
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


class OpenAIInferenceProvider(InferenceProvider):
    """OpenAI inference provider using GPT-4o-mini by default.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI inference provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._model = settings.openai_model
        self._client: AsyncOpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    async def generate(self, prompt: str) -> str:
        """Generate a plain-text reply with OpenAI.

        Args:
            prompt: Complete instruction prompt

        Returns:
            Raw reply text

        Raises:
            InferenceError: Missing API key, API failure or empty reply
        """
        if not self.is_available():
            raise InferenceError(
                self.provider_name, "OPENAI_API_KEY environment variable not set"
            )

        # Initialize client if not already done
        api_key = os.getenv("OPENAI_API_KEY")
        if self._client is None or self._client.api_key != api_key:
            self._client = AsyncOpenAI(api_key=api_key)

        try:
            response = await self._call_openai_with_retry(prompt)
        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise InferenceError(self.provider_name, "API call failed", e) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise InferenceError(self.provider_name, "response has no choices", e) from e
        if not content:
            raise InferenceError(self.provider_name, "model returned an empty response")
        return str(content)

    @retry(
        retry=retry_if_exception_type((APIConnectionError, RateLimitError, InternalServerError)),
        wait=wait_exponential_jitter(initial=1, max=60),  # Exponential backoff with jitter
        stop=stop_after_attempt(3),  # Max 3 attempts
        reraise=True,  # Re-raise exception after max attempts
    )
    async def _call_openai_with_retry(self, prompt: str) -> Any:
        """Call OpenAI API with retry logic for transient errors.

        Retries connection errors, rate limits and 5xx responses up to 3 times
        with increasing delays (1s, 2-4s, up to 60s max).

        Args:
            prompt: Extraction prompt for the LLM

        Returns:
            OpenAI API response

        Raises:
            Exception: After all retry attempts are exhausted
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {
                    "role": "system",
                    "content": "You are an invoice data extraction assistant.",
                },
                {"role": "user", "content": prompt},
            ],
            temperature=self.generation_config.temperature,
            top_p=self.generation_config.top_p,
            max_tokens=self.generation_config.max_output_tokens,
            response_format={"type": "text"},
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
