"""Abstract base class for inference providers.

Enables switching between different generative model backends (Gemini,
OpenAI, Ollama) while the extraction pipeline only sees "prompt in, text out".

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

Providers are constructed explicitly with Settings and closed explicitly
with aclose(); nothing is created at import time.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from services.shared.config import Settings


class GenerationConfig(BaseModel):
    """Decoding parameters sent with every inference call.

    Attributes:
        temperature: Sampling temperature (0 for deterministic decoding)
        top_p: Nucleus sampling threshold
        top_k: Top-k sampling cutoff
        max_output_tokens: Output token ceiling
        response_mime_type: Requested response format (plain text)
    """

    temperature: float = 0.0
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int = 8192
    response_mime_type: str = "text/plain"

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationConfig":
        """Build the decoding configuration from application settings."""
        return cls(
            temperature=settings.generation_temperature,
            top_p=settings.generation_top_p,
            top_k=settings.generation_top_k,
            max_output_tokens=settings.generation_max_output_tokens,
            response_mime_type=settings.generation_response_mime_type,
        )


class InferenceProvider(ABC):
    """Abstract base class for generative text providers.

    Implementations return the raw reply text. The reply is not guaranteed to
    be JSON; recovery and validation happen downstream. Failures (missing
    credentials, exhausted retries, empty replies) raise InferenceError.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.generation_config = GenerationConfig.from_settings(settings)

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Send the prompt to the model and return its raw text reply.

        Args:
            prompt: Complete instruction prompt

        Returns:
            Raw model output

        Raises:
            InferenceError: If no text could be obtained
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'gemini', 'openai')
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None

    async def health_check(self) -> bool:
        """Check if the provider can serve requests right now.

        Defaults to is_available(); providers backed by a server they can
        query override this.

        Returns:
            True if the provider is ready
        """
        return self.is_available()
