"""Factory for creating AI extraction providers from configuration.

A registry maps provider names to classes so new providers can be added at
runtime without touching the engine.
"""

import logging

from invoicer.extraction.base import ExtractionProvider
from invoicer.extraction.ollama_provider import OllamaExtractionProvider
from invoicer.extraction.openai_provider import OpenAIExtractionProvider
from invoicer.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available extraction providers."""

    _providers: dict[str, type[ExtractionProvider]] = {
        "openai": OpenAIExtractionProvider,
        "ollama": OllamaExtractionProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[ExtractionProvider]) -> None:
        """Register a new provider.

        Args:
            name: Provider identifier (matched against Settings.ai_provider)
            provider_class: Class implementing ExtractionProvider
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered extraction provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[ExtractionProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown extraction provider: '{name}'. Available providers: {available}"
            )
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())


def create_extraction_service(settings: Settings) -> ExtractionProvider:
    """Create the AI extraction provider named by settings.ai_provider.

    An unavailable provider (e.g. missing API key) is still returned; its
    calls fail softly and extraction falls back to regex results.

    Raises:
        ValueError: If configured provider is unknown

    Example:
        >>> provider = create_extraction_service(Settings(ai_provider="ollama"))
        >>> result = provider.extract_invoice_fields("Logo design - ₹5,000")
    """
    provider_name = settings.ai_provider
    provider = ProviderRegistry.get_provider_class(provider_name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys, server URL)."
        )

    logger.info(f"Created extraction provider: {provider_name}")
    return provider
