"""
OpenAI-compatible provider implementation.

Supports OpenAI and any OpenAI-compatible chat-completions endpoint
(DeepSeek, Anthropic's compatibility endpoint, self-hosted gateways).
The backend keeps no conversation state, so sessions hold their own
message history and resend it on every turn.
"""

import logging
from typing import List, Optional

from openai import APIError, APIStatusError, AsyncOpenAI

from ..errors import ProviderError
from ..parsing import strip_code_fences, strip_thinking
from .base import (
    ChatSession,
    LLMProvider,
    LLMRequest,
    Message,
    MessageRole,
    SessionConfig,
)

logger = logging.getLogger(__name__)

JSON_REMINDER = "IMPORTANT: You must respond in valid JSON format."


def normalize_base_url(base_url: Optional[str]) -> Optional[str]:
    """Trim a full ``/chat/completions`` URL back to the API root."""
    if not base_url:
        return None
    url = base_url.strip().rstrip("/")
    if url.endswith("/chat/completions"):
        url = url[: -len("/chat/completions")]
    return url or None


class OpenAIProvider(LLMProvider):
    """
    Provider implementation for OpenAI and OpenAI-compatible APIs.

    Supports:
    - OpenAI (api.openai.com)
    - DeepSeek (api.deepseek.com)
    - Anthropic (OpenAI SDK compatibility endpoint)
    - Any other OpenAI-compatible API
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(api_key, normalize_base_url(base_url), **kwargs)
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily created SDK client; SDK-level retries are disabled."""
        if self._client is None:
            api_key = self._require_api_key()
            if self.base_url:
                self._client = AsyncOpenAI(api_key=api_key, base_url=self.base_url, max_retries=0)
            else:
                self._client = AsyncOpenAI(api_key=api_key, max_retries=0)
        return self._client

    async def complete(self, request: LLMRequest) -> str:
        """
        Send a chat-completions request.

        Returns:
            The first choice's message text, with reasoning blocks removed
            and, in JSON mode, any surrounding code fence stripped

        Raises:
            ConfigurationError: If no API key is configured
            ProviderError: For API errors
        """
        client = self.client
        api_request = request.to_dict()

        try:
            response = await client.chat.completions.create(**api_request)
        except APIStatusError as e:
            raise ProviderError(
                f"API Request Failed ({e.status_code}): {e.message}",
                status=e.status_code,
                code=getattr(e, "code", None),
                raw_message=e.message,
                error=e.body,
            ) from e
        except APIError as e:
            raise ProviderError(
                f"Error calling API: {e.message}",
                code=getattr(e, "code", None),
                raw_message=e.message,
                error=e.body,
            ) from e

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        content = strip_thinking(content)
        if request.json_output:
            content = strip_code_fences(content)
        return content

    def open_session(self, config: SessionConfig) -> ChatSession:
        self._require_api_key()
        return LocalHistorySession(self, config)

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        if self.base_url:
            if "deepseek" in self.base_url.lower():
                return "DeepSeek"
            elif "anthropic" in self.base_url.lower():
                return "Anthropic"
            elif "openai.com" in self.base_url.lower():
                return "OpenAI"
            else:
                return "Custom OpenAI-compatible"
        else:
            return "OpenAI"


class LocalHistorySession(ChatSession):
    """
    Session whose message history lives on the client.

    The history is seeded with the system instruction and only grows when a
    turn succeeds, so a failed call leaves it unchanged.
    """

    def __init__(self, provider: OpenAIProvider, config: SessionConfig):
        super().__init__(config)
        self.provider = provider
        system = config.system_instruction
        if config.json_output:
            system = f"{system}\n\n{JSON_REMINDER}"
        self._messages: List[Message] = [Message(role=MessageRole.SYSTEM, content=system)]

    @property
    def history(self) -> List[Message]:
        """Copy of the message history, system message first."""
        return list(self._messages)

    @property
    def structured(self) -> bool:
        return False

    async def send(self, text: str) -> str:
        messages = [*self._messages, Message(role=MessageRole.USER, content=text)]
        request = LLMRequest(
            messages=messages,
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            json_output=self.config.json_output,
        )
        reply = await self.provider.complete(request)
        self._messages = [*messages, Message(role=MessageRole.ASSISTANT, content=reply)]
        return reply
