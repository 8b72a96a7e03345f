"""Factory for creating inference providers based on configuration.

Implements Factory Pattern for provider selection with registry pattern for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from services.extraction.base import InferenceProvider
from services.extraction.gemini_provider import GeminiInferenceProvider
from services.extraction.ollama_provider import OllamaInferenceProvider
from services.extraction.openai_provider import OpenAIInferenceProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available inference providers.

    Maintains a mapping of provider names to their implementation classes.
    Supports runtime registration of new providers.
    """

    _providers: dict[str, type[InferenceProvider]] = {
        "gemini": GeminiInferenceProvider,
        "openai": OpenAIInferenceProvider,
        "ollama": OllamaInferenceProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[InferenceProvider]) -> None:
        """Register a new provider.

        Args:
            name: Provider identifier (must match Settings.inference_provider)
            provider_class: Provider class implementing InferenceProvider interface
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered inference provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[InferenceProvider]:
        """Get provider class by name.

        Args:
            name: Provider identifier

        Returns:
            Provider class implementing InferenceProvider

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown inference provider: '{name}'. " f"Available providers: {available}"
            )
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        """List all registered provider names.

        Returns:
            List of provider names
        """
        return list(cls._providers.keys())


def create_inference_provider(settings: Settings) -> InferenceProvider:
    """Factory function to create an inference provider based on configuration.

    Reads settings.inference_provider and instantiates the appropriate provider.
    Logs a warning if the provider is not available (e.g., missing API key);
    the first generate() call will then fail with InferenceError.

    Args:
        settings: Application settings with inference_provider field

    Returns:
        Configured inference provider instance

    Raises:
        ValueError: If configured provider is unknown

    Example:
        >>> settings = Settings(inference_provider="ollama")
        >>> provider = create_inference_provider(settings)
        >>> text = await provider.generate("Extract...")
    """
    provider_name = settings.inference_provider
    provider_class = ProviderRegistry.get_provider_class(provider_name)

    provider = provider_class(settings)

    if not provider.is_available():
        logger.warning(
            f"Inference provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys)."
        )

    logger.info(f"Created inference provider: {provider_name}")
    return provider
