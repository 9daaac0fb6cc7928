"""
Google Gemini provider implementation.

Uses the google-genai SDK. Gemini supports schema-constrained JSON output
and server-side chat sessions, so ``open_session`` returns a handle whose
history is kept by the SDK chat object.
"""

import logging
from typing import Optional

from google import genai
from google.genai import errors, types

from ..errors import ProviderError
from ..parsing import strip_thinking
from .base import ChatSession, LLMProvider, LLMRequest, MessageRole, SessionConfig

logger = logging.getLogger(__name__)


def _provider_error(e: errors.APIError) -> ProviderError:
    return ProviderError(
        f"Gemini API error ({e.code} {e.status}): {e.message}",
        status=e.code,
        code=e.status,
        raw_message=e.message,
        error=e.details,
    )


def build_generation_config(
    temperature: float,
    max_tokens: Optional[int] = None,
    system_instruction: Optional[str] = None,
    json_output: bool = False,
    response_schema: Optional[dict] = None,
) -> types.GenerateContentConfig:
    """Translate provider-neutral options into a Gemini generation config."""
    kwargs = {"temperature": temperature}
    if max_tokens is not None:
        kwargs["max_output_tokens"] = max_tokens
    if system_instruction:
        kwargs["system_instruction"] = system_instruction
    if json_output or response_schema:
        kwargs["response_mime_type"] = "application/json"
    if response_schema:
        kwargs["response_schema"] = response_schema
    return types.GenerateContentConfig(**kwargs)


class GeminiProvider(LLMProvider):
    """Provider implementation for the Gemini API (fixed endpoint)."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(api_key, base_url, **kwargs)
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        """Lazily created SDK client."""
        if self._client is None:
            self._client = genai.Client(api_key=self._require_api_key())
        return self._client

    async def complete(self, request: LLMRequest) -> str:
        client = self.client
        contents = [
            types.Content(
                role="model" if m.role == MessageRole.ASSISTANT else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in request.conversation
        ]
        config = build_generation_config(
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            system_instruction=request.system_instruction,
            json_output=request.json_output,
            response_schema=request.response_schema,
        )

        try:
            response = await client.aio.models.generate_content(
                model=request.model,
                contents=contents,
                config=config,
            )
        except errors.APIError as e:
            raise _provider_error(e) from e

        return strip_thinking(response.text or "")

    def open_session(self, config: SessionConfig) -> ChatSession:
        chat = self.client.aio.chats.create(
            model=config.model,
            config=build_generation_config(
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                system_instruction=config.system_instruction,
                json_output=config.json_output,
                response_schema=config.response_schema,
            ),
        )
        logger.debug("Opened Gemini chat session for %s", config.model)
        return GeminiChatSession(chat, config)

    @property
    def provider_name(self) -> str:
        return "Gemini"


class GeminiChatSession(ChatSession):
    """Session backed by an SDK chat object holding provider-side history."""

    def __init__(self, chat, config: SessionConfig):
        super().__init__(config)
        self.chat = chat

    @property
    def structured(self) -> bool:
        return True

    async def send(self, text: str) -> str:
        try:
            response = await self.chat.send_message(text)
        except errors.APIError as e:
            raise _provider_error(e) from e
        return response.text or ""
