"""
Configuration management for PromptMaster.

Defines the model catalogue, feature-to-model routing and application
settings using Pydantic for type safety and validation. Settings are
immutable snapshots: an edit produces a new ``AppSettings`` which replaces
the old one wholesale.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "promptmaster-settings"


class Language(str, Enum):
    """Languages the interview and editor can work in."""
    CHINESE = "zh"
    ENGLISH = "en"

    @property
    def display_name(self) -> str:
        """Name used when instructing a model which language to write in."""
        return "Simplified Chinese" if self is Language.CHINESE else "English"


class ApiProvider(str, Enum):
    """Known API providers."""
    GOOGLE_GEMINI = "google-gemini"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class ProviderKind(str, Enum):
    """Adapter families a model can be invoked through."""
    GEMINI = "gemini"
    OPENAI_COMPATIBLE = "openai_compatible"


class FeatureType(str, Enum):
    """Logical capabilities, each routed to its own model."""
    INTERVIEW = "interview"
    MENTOR = "mentor"
    FEEDBACK = "feedback"
    CRITIQUE = "critique"
    CLASSIFY = "classify"
    REWRITE = "rewrite"
    REVERSE_ENGINEER = "reverse-engineer"


class ModelConfig(BaseModel):
    """One invocable backend configuration."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str = Field(description="Unique model id referenced by feature routing")
    name: str = Field(description="Display name")
    provider: ApiProvider = Field(description="Provider the model is served by")
    model_name: str = Field(description="Model name sent to the API")
    base_url: Optional[str] = Field(default=None, description="Model-specific base URL")
    api_key: Optional[str] = Field(default=None, description="Model-specific API key")
    description: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, ge=1, le=128000)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)

    @field_validator("id", "model_name")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @property
    def kind(self) -> ProviderKind:
        """Adapter family, inferred from the provider or a model-name prefix."""
        if self.provider == ApiProvider.GOOGLE_GEMINI or self.model_name.startswith("gemini-"):
            return ProviderKind.GEMINI
        return ProviderKind.OPENAI_COMPATIBLE

    def __str__(self) -> str:
        return self.name or self.id


PREDEFINED_MODELS: List[ModelConfig] = [
    ModelConfig(
        id="gemini-pro",
        name="Gemini Pro (Deep Reasoning)",
        provider=ApiProvider.GOOGLE_GEMINI,
        model_name="gemini-3-pro-preview",
        description="Strong reasoning, suited to complex tasks",
    ),
    ModelConfig(
        id="gemini-flash",
        name="Gemini Flash (Fast)",
        provider=ApiProvider.GOOGLE_GEMINI,
        model_name="gemini-3-flash-preview",
        description="Fast responses, suited to real-time interaction",
    ),
    ModelConfig(
        id="deepseek-chat",
        name="DeepSeek Chat (V3)",
        provider=ApiProvider.DEEPSEEK,
        model_name="deepseek-chat",
        description="DeepSeek V3 general-purpose model",
        base_url="https://api.deepseek.com",
    ),
    ModelConfig(
        id="deepseek-reasoner",
        name="DeepSeek Reasoner (R1)",
        provider=ApiProvider.DEEPSEEK,
        model_name="deepseek-reasoner",
        description="DeepSeek R1 reasoning model for complex logic",
        base_url="https://api.deepseek.com",
    ),
]

FAST_MODEL_ID = "gemini-flash"

DEFAULT_FEATURE_MODELS: Dict[FeatureType, str] = {
    FeatureType.INTERVIEW: "gemini-flash",
    FeatureType.MENTOR: "gemini-pro",
    FeatureType.FEEDBACK: "gemini-pro",
    FeatureType.CRITIQUE: "gemini-pro",
    FeatureType.CLASSIFY: "gemini-flash",
    FeatureType.REWRITE: "gemini-pro",
    FeatureType.REVERSE_ENGINEER: "gemini-flash",
}


class ProviderPreset(BaseModel):
    """Connection defaults for an API provider."""

    base_url: Optional[str] = Field(default=None, description="API base URL (None for the SDK default)")
    api_key_placeholder: str = Field(default="your-api-key", description="Placeholder text for API key input")


class ProviderPresets:
    """Collection of provider presets."""

    GOOGLE_GEMINI = ProviderPreset(api_key_placeholder="AIza...")

    DEEPSEEK = ProviderPreset(
        base_url="https://api.deepseek.com",
        api_key_placeholder="sk-...",
    )

    OPENAI = ProviderPreset(api_key_placeholder="sk-...")

    ANTHROPIC = ProviderPreset(
        base_url="https://api.anthropic.com/v1/",
        api_key_placeholder="sk-ant-...",
    )

    CUSTOM = ProviderPreset()

    @classmethod
    def get_preset(cls, provider: ApiProvider) -> ProviderPreset:
        """Get provider preset by provider."""
        presets = {
            ApiProvider.GOOGLE_GEMINI: cls.GOOGLE_GEMINI,
            ApiProvider.DEEPSEEK: cls.DEEPSEEK,
            ApiProvider.OPENAI: cls.OPENAI,
            ApiProvider.ANTHROPIC: cls.ANTHROPIC,
            ApiProvider.CUSTOM: cls.CUSTOM,
        }
        return presets.get(provider, cls.CUSTOM)


class ApiConfig(BaseModel):
    """API keys, endpoints and feature routing."""

    model_config = ConfigDict(frozen=True)

    active_provider: ApiProvider = ApiProvider.GOOGLE_GEMINI
    gemini_api_key: str = ""
    deepseek_api_key: str = ""
    openai_api_key: str = ""
    default_base_url: str = ""
    default_api_key: str = ""
    models: Dict[FeatureType, str] = Field(default_factory=lambda: dict(DEFAULT_FEATURE_MODELS))
    custom_models: List[ModelConfig] = Field(default_factory=list)

    @field_validator("models", mode="before")
    @classmethod
    def fill_missing_features(cls, value: Any) -> Any:
        """Merge saved routing over the defaults, dropping features this version does not know."""
        if not isinstance(value, dict):
            return value

        merged = dict(DEFAULT_FEATURE_MODELS)
        for feature, model_id in value.items():
            try:
                feature = FeatureType(feature)
            except ValueError:
                logger.warning("Ignoring routing for unknown feature: %s", feature)
                continue
            if model_id:
                merged[feature] = model_id
        return merged

    def provider_api_key(self, provider: ApiProvider) -> str:
        """API key stored for a whole provider."""
        keys = {
            ApiProvider.GOOGLE_GEMINI: self.gemini_api_key,
            ApiProvider.DEEPSEEK: self.deepseek_api_key,
            ApiProvider.OPENAI: self.openai_api_key,
        }
        return keys.get(provider, "")


class AppSettings(BaseModel):
    """Process-wide settings snapshot."""

    model_config = ConfigDict(frozen=True)

    api: ApiConfig = Field(default_factory=ApiConfig)
    language: Language = Language.CHINESE
    theme: str = Field(default="light", pattern="^(light|dark|system)$")

    def to_json(self) -> str:
        """Serialize the whole snapshot."""
        return self.model_dump_json()


DEFAULT_APP_SETTINGS = AppSettings()


class EnvSettings(BaseSettings):
    """
    Bootstrap values loaded from environment variables.

    Read from the process environment and a ``.env`` file; only used to seed
    settings when nothing has been saved yet.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    deepseek_api_key: str = Field(default="", description="DeepSeek API key")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    default_api_key: str = Field(default="", description="Key used for any model without its own")
    default_base_url: str = Field(default="", description="Base URL used for any model without its own")
    promptmaster_language: Language = Field(default=Language.CHINESE, description="Interface language")

    def to_app_settings(self) -> AppSettings:
        """Build a settings snapshot from the environment."""
        return AppSettings(
            api=ApiConfig(
                gemini_api_key=self.gemini_api_key,
                deepseek_api_key=self.deepseek_api_key,
                openai_api_key=self.openai_api_key,
                default_api_key=self.default_api_key,
                default_base_url=self.default_base_url,
            ),
            language=self.promptmaster_language,
        )


def get_all_models(custom_models: Optional[List[ModelConfig]] = None) -> List[ModelConfig]:
    """Predefined models followed by custom models."""
    return [*PREDEFINED_MODELS, *(custom_models or [])]


def get_model_by_id(model_id: str, custom_models: Optional[List[ModelConfig]] = None) -> Optional[ModelConfig]:
    """Find a model by id among predefined and custom models."""
    for model in get_all_models(custom_models):
        if model.id == model_id:
            return model
    return None


def load_settings(store: KeyValueStore, env: Optional[EnvSettings] = None) -> AppSettings:
    """
    Load settings from the store.

    Falls back to the environment (or defaults) when nothing is stored or
    the stored blob cannot be read.
    """
    saved = store.get(SETTINGS_KEY)
    if saved:
        try:
            return AppSettings.model_validate(json.loads(saved))
        except (ValueError, ValidationError) as e:
            logger.warning("Failed to load saved settings, using defaults: %s", e)

    if env is None:
        env = EnvSettings()
    return env.to_app_settings()


def save_settings(store: KeyValueStore, settings: AppSettings) -> None:
    """Persist the whole settings snapshot."""
    store.set(SETTINGS_KEY, settings.to_json())
    logger.info("Settings saved")


def validate_settings(settings: AppSettings) -> List[str]:
    """Validate settings and return a list of problems."""
    from .router import get_api_key_for_model, get_base_url_for_model

    errors = []
    custom_models = settings.api.custom_models

    for feature, model_id in settings.api.models.items():
        model = get_model_by_id(model_id, custom_models)
        if model is None:
            errors.append(f"Feature '{feature.value}': unknown model '{model_id}'")
            continue
        if not get_api_key_for_model(model, settings):
            errors.append(f"Feature '{feature.value}': no API key for model '{model.id}'")

    for model in custom_models:
        if model.provider == ApiProvider.CUSTOM and model.kind == ProviderKind.OPENAI_COMPATIBLE:
            if not get_base_url_for_model(model, settings):
                errors.append(f"Model '{model.id}': custom provider requires a base URL")

    return errors


def require_model(model_id: str, settings: AppSettings) -> ModelConfig:
    """Look up a model or raise ``ConfigurationError``."""
    model = get_model_by_id(model_id, settings.api.custom_models)
    if model is None:
        raise ConfigurationError(f"Model configuration not found: {model_id}")
    return model
