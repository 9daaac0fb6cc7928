"""
Provider registry and factory for creating provider instances.

Provides a centralized way to map an adapter family to its implementation.
"""

from typing import Dict, List, Optional, Type

from ..config import ProviderKind
from .base import LLMProvider
from .gemini import GeminiProvider
from .openai import OpenAIProvider


class ProviderRegistry:
    """
    Registry for provider implementations.

    Manages provider types and creates instances based on configuration.
    """

    def __init__(self):
        """Initialize the provider registry."""
        self._providers: Dict[ProviderKind, Type[LLMProvider]] = {}
        self._register_default_providers()

    def _register_default_providers(self):
        """Register built-in provider implementations."""
        self.register(ProviderKind.GEMINI, GeminiProvider)
        # DeepSeek, OpenAI, Anthropic and custom gateways share one implementation
        self.register(ProviderKind.OPENAI_COMPATIBLE, OpenAIProvider)

    def register(self, kind: ProviderKind, provider_class: Type[LLMProvider]):
        """
        Register a provider implementation.

        Args:
            kind: Adapter family the class serves
            provider_class: Provider class that inherits from LLMProvider
        """
        if not issubclass(provider_class, LLMProvider):
            raise ValueError("Provider class must inherit from LLMProvider")

        self._providers[ProviderKind(kind)] = provider_class

    def get_provider_class(self, kind: ProviderKind) -> Optional[Type[LLMProvider]]:
        """Get provider class by adapter family."""
        return self._providers.get(ProviderKind(kind))

    def create_provider(
        self,
        kind: ProviderKind,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs
    ) -> LLMProvider:
        """
        Create a provider instance.

        Raises:
            ValueError: If no implementation is registered for ``kind``
        """
        provider_class = self.get_provider_class(kind)
        if not provider_class:
            raise ValueError(
                f"Unknown provider '{kind}'. "
                f"Available providers: {', '.join(self.list_providers())}"
            )

        return provider_class(api_key=api_key, base_url=base_url, **kwargs)

    def list_providers(self) -> List[str]:
        """List all registered adapter families."""
        return sorted(kind.value for kind in self._providers)


# Global provider registry instance
_global_registry = ProviderRegistry()


def create_provider(
    kind: ProviderKind,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs
) -> LLMProvider:
    """Convenience function to create a provider using the global registry."""
    return _global_registry.create_provider(kind=kind, api_key=api_key, base_url=base_url, **kwargs)
