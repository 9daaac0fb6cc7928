"""Chat-completion provider adapters."""

from .base import ChatSession, LLMProvider, LLMRequest, Message, MessageRole, SessionConfig
from .gemini import GeminiChatSession, GeminiProvider
from .openai import LocalHistorySession, OpenAIProvider
from .registry import ProviderRegistry, create_provider

__all__ = [
    "ChatSession",
    "GeminiChatSession",
    "GeminiProvider",
    "LLMProvider",
    "LLMRequest",
    "LocalHistorySession",
    "Message",
    "MessageRole",
    "OpenAIProvider",
    "ProviderRegistry",
    "SessionConfig",
    "create_provider",
]
