"""Feature-to-model routing with API key and base URL resolution."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .config import (
    FAST_MODEL_ID,
    ApiProvider,
    AppSettings,
    FeatureType,
    ModelConfig,
    ProviderKind,
    ProviderPresets,
    require_model,
)
from .errors import ConfigurationError
from .providers.base import LLMProvider
from .providers.registry import create_provider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., LLMProvider]

MODEL_NAME_PREFIXES = (
    ("gemini-", ApiProvider.GOOGLE_GEMINI),
    ("deepseek", ApiProvider.DEEPSEEK),
    ("gpt-", ApiProvider.OPENAI),
    ("o1", ApiProvider.OPENAI),
    ("o3", ApiProvider.OPENAI),
    ("o4", ApiProvider.OPENAI),
)


@dataclass(frozen=True)
class ResolvedModel:
    """A model together with the credentials it will be called with."""
    model: ModelConfig
    api_key: str
    base_url: Optional[str]

    @property
    def kind(self) -> ProviderKind:
        return self.model.kind


def infer_provider(model: ModelConfig) -> ApiProvider:
    """Provider whose stored key applies to ``model``."""
    if model.provider not in (ApiProvider.CUSTOM, ApiProvider.ANTHROPIC):
        return model.provider
    name = model.model_name.lower()
    for prefix, provider in MODEL_NAME_PREFIXES:
        if name.startswith(prefix):
            return provider
    return model.provider


def get_api_key_for_model(model: ModelConfig, settings: AppSettings) -> str:
    """Model key, then the global default key, then the provider's key."""
    if model.api_key:
        return model.api_key

    if settings.api.default_api_key:
        return settings.api.default_api_key

    return settings.api.provider_api_key(infer_provider(model))


def get_base_url_for_model(model: ModelConfig, settings: AppSettings) -> Optional[str]:
    """
    Model base URL, then the global default.

    Gemini-like models use a fixed endpoint and never get one. OpenAI-compatible
    models with neither fall back to their provider preset.
    """
    if model.kind == ProviderKind.GEMINI:
        return None

    if model.base_url:
        return model.base_url

    if settings.api.default_base_url:
        return settings.api.default_base_url

    return ProviderPresets.get_preset(model.provider).base_url


class FeatureRouter:
    """
    Resolves features to models and hands out provider instances.

    Reads one settings snapshot at a time. Provider instances are cached per
    (kind, api_key, base_url) and the cache is dropped whenever the snapshot
    is replaced.
    """

    def __init__(self, settings: AppSettings, provider_factory: Optional[ProviderFactory] = None):
        self._settings = settings
        self._provider_factory = provider_factory or create_provider
        self._providers: Dict[Tuple[ProviderKind, str, Optional[str]], LLMProvider] = {}

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def update_settings(self, settings: AppSettings) -> None:
        """Replace the settings snapshot and invalidate cached providers."""
        self._settings = settings
        self._providers = {}
        logger.info("Settings updated; provider cache cleared")

    def model_for(self, model_id: str) -> ResolvedModel:
        """Resolve a model id against the current snapshot."""
        model = require_model(model_id, self._settings)
        return ResolvedModel(
            model=model,
            api_key=get_api_key_for_model(model, self._settings),
            base_url=get_base_url_for_model(model, self._settings),
        )

    def resolve(self, feature: FeatureType) -> ResolvedModel:
        """
        Resolve the model routed to ``feature``.

        Raises:
            ConfigurationError: If the routed model id matches no model
        """
        model_id = self._settings.api.models.get(FeatureType(feature))
        if not model_id:
            raise ConfigurationError(f"No model assigned to feature: {FeatureType(feature).value}")
        try:
            return self.model_for(model_id)
        except ConfigurationError:
            raise ConfigurationError(
                f"Model configuration not found for feature: {FeatureType(feature).value} ({model_id})"
            ) from None

    def fast_model(self) -> ResolvedModel:
        """Fallback model: a custom 'flash' model if configured, else the predefined one."""
        for model in self._settings.api.custom_models:
            if "flash" in model.model_name:
                return self.model_for(model.id)
        return self.model_for(FAST_MODEL_ID)

    def provider_for(self, resolved: ResolvedModel) -> LLMProvider:
        """Provider instance able to call ``resolved``."""
        key = (resolved.kind, resolved.api_key, resolved.base_url)
        provider = self._providers.get(key)
        if provider is None:
            provider = self._provider_factory(resolved.kind, api_key=resolved.api_key, base_url=resolved.base_url)
            self._providers[key] = provider
        return provider
