"""Ollama-based inference provider for self-hosted LLM inference.

Uses a local Ollama server for invoice extraction so documents never leave
the premises.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import logging

import httpx
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


class OllamaInferenceProvider(InferenceProvider):
    """Ollama inference provider for self-hosted models.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        """Initialize Ollama inference provider.

        Args:
            settings: Application settings
            client: Preconfigured HTTP client (mainly for tests)
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = client or httpx.AsyncClient(timeout=120.0)  # LLMs can be slow

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if a server URL and model are configured.

        Reachability is checked by health_check().

        Returns:
            True if base URL and model name are set
        """
        return bool(self._base_url and self._model)

    async def health_check(self) -> bool:
        """Check configuration, then that the server has the model loaded.

        Returns:
            True if configured and the Ollama server reports the model
        """
        return self.is_available() and await self.check_server()

    async def check_server(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = await self._client.get(f"{self._base_url}/api/tags")
        except httpx.HTTPError as e:
            logger.warning(f"Ollama server unreachable: {e}")
            return False
        if response.status_code != 200:
            return False
        try:
            models = response.json().get("models", [])
        except (ValueError, AttributeError) as e:
            logger.warning(f"Ollama server returned an unreadable model list: {e}")
            return False
        model_names = [m.get("name", "").split(":")[0] for m in models]
        return self._model.split(":")[0] in model_names

    async def generate(self, prompt: str) -> str:
        """Generate a plain-text reply with Ollama.

        Args:
            prompt: Complete instruction prompt

        Returns:
            Raw reply text

        Raises:
            InferenceError: HTTP failure after retries or empty reply
        """
        try:
            text = await self._call_ollama_with_retry(prompt)
        except httpx.HTTPError as e:
            logger.error(f"Ollama generation failed: {e}")
            raise InferenceError(self.provider_name, "API call failed", e) from e

        if not text:
            raise InferenceError(self.provider_name, "model returned an empty response")
        return text

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _call_ollama_with_retry(self, prompt: str) -> str:
        """Call Ollama API with retry logic for transient errors.

        Args:
            prompt: Extraction prompt for the LLM

        Returns:
            Raw response text from Ollama

        Raises:
            httpx.HTTPError: After all retry attempts exhausted
            InferenceError: If the body is not a JSON object
        """
        response = await self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self._model,
                "prompt": prompt,
                "stream": False,
                "options": {
                    "temperature": self.generation_config.temperature,
                    "top_p": self.generation_config.top_p,
                    "top_k": self.generation_config.top_k,
                    "num_predict": self.generation_config.max_output_tokens,
                },
            },
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as e:
            raise InferenceError(self.provider_name, "response body is not JSON", e) from e
        if not isinstance(payload, dict):
            raise InferenceError(self.provider_name, "response body is not a JSON object")
        return str(payload.get("response") or "")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
