"""Pytest configuration and shared fixtures."""

import shutil
import tempfile
from pathlib import Path
from typing import Dict, List
from unittest.mock import AsyncMock, patch

import pytest

from promptmaster.config import ApiConfig, ApiProvider, AppSettings, FeatureType, Language, ModelConfig
from promptmaster.llm import PromptService
from promptmaster.providers.base import ChatSession, LLMProvider, LLMRequest, SessionConfig
from promptmaster.router import FeatureRouter
from promptmaster.storage import MemoryStore

FAKE_BASE_URL = "http://fake.local/v1"

# One custom model per feature, so each call can be told apart by model name
FEATURE_MODEL_NAMES = {
    FeatureType.INTERVIEW: "fake-interview",
    FeatureType.MENTOR: "fake-mentor",
    FeatureType.FEEDBACK: "fake-feedback",
    FeatureType.CRITIQUE: "fake-critique",
    FeatureType.CLASSIFY: "fake-classify",
    FeatureType.REWRITE: "fake-rewrite",
    FeatureType.REVERSE_ENGINEER: "fake-reverse",
}
FAST_MODEL_NAME = "fake-flash"


class FakeSession(ChatSession):
    """Session that answers from the owning provider's script."""

    def __init__(self, provider: "FakeProvider", config: SessionConfig):
        super().__init__(config)
        self.provider = provider
        self.sent: List[str] = []

    @property
    def structured(self) -> bool:
        return False

    async def send(self, text: str) -> str:
        self.sent.append(text)
        return self.provider.next_reply(self.config.model, text)


class FakeProvider(LLMProvider):
    """
    Provider that records requests and replies from a per-model script.

    A scripted reply may be a string, an exception to raise, or a callable
    receiving the request (or the session text) and returning a string.
    Unscripted calls return an empty string.
    """

    def __init__(self, api_key: str = "test-key", base_url=None, **kwargs):
        super().__init__(api_key, base_url, **kwargs)
        self.replies: Dict[str, list] = {}
        self.requests: List[LLMRequest] = []
        self.sessions: List[FakeSession] = []

    def script(self, model_name: str, *replies):
        self.replies.setdefault(model_name, []).extend(replies)

    def next_reply(self, model_name: str, payload) -> str:
        queue = self.replies.get(model_name)
        if not queue:
            return ""
        reply = queue.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(payload)
        return reply

    def requests_for(self, model_name: str) -> List[LLMRequest]:
        return [r for r in self.requests if r.model == model_name]

    async def complete(self, request: LLMRequest) -> str:
        self._require_api_key()
        self.requests.append(request)
        return self.next_reply(request.model, request)

    def open_session(self, config: SessionConfig) -> ChatSession:
        self._require_api_key()
        session = FakeSession(self, config)
        self.sessions.append(session)
        return session

    @property
    def provider_name(self) -> str:
        return "Fake"


def make_settings(language: Language = Language.ENGLISH, **api_overrides) -> AppSettings:
    """Settings routing every feature to its own OpenAI-compatible fake model."""
    custom_models = [
        ModelConfig(
            id=f"{feature.value}-model",
            name=f"Fake {feature.value}",
            provider=ApiProvider.CUSTOM,
            model_name=model_name,
            base_url=FAKE_BASE_URL,
        )
        for feature, model_name in FEATURE_MODEL_NAMES.items()
    ]
    custom_models.append(ModelConfig(
        id="fast-model",
        name="Fake flash",
        provider=ApiProvider.CUSTOM,
        model_name=FAST_MODEL_NAME,
        base_url=FAKE_BASE_URL,
    ))

    api = dict(
        default_api_key="test-key",
        models={feature: f"{feature.value}-model" for feature in FeatureType},
        custom_models=custom_models,
    )
    api.update(api_overrides)
    return AppSettings(api=ApiConfig(**api), language=language)


@pytest.fixture
def settings():
    """Settings with a fake model per feature."""
    return make_settings()


@pytest.fixture
def fake_provider():
    """Scripted provider shared by every feature."""
    return FakeProvider()


@pytest.fixture
def router(settings, fake_provider):
    """Router handing out the fake provider."""
    return FeatureRouter(settings, provider_factory=lambda kind, api_key=None, base_url=None: fake_provider)


@pytest.fixture
def service(router):
    """Prompt service over the fake provider."""
    return PromptService(router)


@pytest.fixture
def no_wait():
    """Make retry backoff instantaneous; yields the patched wait."""
    with patch("promptmaster.retry.wait", new_callable=AsyncMock) as mock_wait:
        yield mock_wait


@pytest.fixture
def memory_store():
    """Empty in-memory settings store."""
    return MemoryStore()


@pytest.fixture
def temp_store_dir():
    """Create a temporary directory for file stores."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)
