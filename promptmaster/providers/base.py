"""
Base provider interface for chat-completion backends.

Defines the abstract interface that all providers must implement: a
stateless one-shot ``complete`` call and a multi-turn ``ChatSession``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ConfigurationError


class MessageRole(str, Enum):
    """Message roles in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A message in a conversation."""
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, str]:
        """Convert message to dictionary format."""
        return {
            "role": self.role.value,
            "content": self.content
        }


@dataclass
class LLMRequest:
    """Request parameters for a completion."""
    messages: List[Message]
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    json_output: bool = False
    response_schema: Optional[Dict[str, Any]] = None

    @property
    def system_instruction(self) -> Optional[str]:
        """Concatenated system messages, if any."""
        parts = [m.content for m in self.messages if m.role == MessageRole.SYSTEM]
        return "\n\n".join(parts) if parts else None

    @property
    def conversation(self) -> List[Message]:
        """Messages other than system messages."""
        return [m for m in self.messages if m.role != MessageRole.SYSTEM]

    def to_dict(self) -> Dict[str, Any]:
        """Convert request to the chat-completions payload format."""
        result = {
            "model": self.model,
            "messages": [msg.to_dict() for msg in self.messages],
            "temperature": self.temperature,
            "stream": False
        }

        if self.max_tokens is not None:
            result["max_tokens"] = self.max_tokens
        if self.json_output:
            result["response_format"] = {"type": "json_object"}

        return result


@dataclass
class SessionConfig:
    """Parameters fixed for the lifetime of a chat session."""
    model: str
    system_instruction: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    json_output: bool = False
    response_schema: Optional[Dict[str, Any]] = field(default=None)


class ChatSession(ABC):
    """A multi-turn conversation with a fixed system instruction."""

    def __init__(self, config: SessionConfig):
        self.config = config

    @abstractmethod
    async def send(self, text: str) -> str:
        """
        Append a user turn and return the model's raw reply.

        Raises:
            ProviderError: If the backend call fails
        """
        pass

    @property
    @abstractmethod
    def structured(self) -> bool:
        """Whether the conversation history is held by the provider."""
        pass


class LLMProvider(ABC):
    """
    Abstract base class for chat-completion providers.

    All provider implementations must inherit from this class and implement
    the required methods. Providers never retry; callers wrap calls in
    ``promptmaster.retry.with_retry``.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        """
        Initialize the provider.

        Args:
            api_key: API key for authentication
            base_url: Custom base URL for the API
            **kwargs: Additional provider-specific configuration
        """
        self.api_key = api_key or ""
        self.base_url = base_url or None
        self.config = kwargs

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(f"An API key is required for provider '{self.provider_name}'.")
        return self.api_key

    @abstractmethod
    async def complete(self, request: LLMRequest) -> str:
        """
        Send a one-shot completion request.

        Args:
            request: LLMRequest object containing the messages and parameters

        Returns:
            The model's raw text

        Raises:
            ConfigurationError: If no API key is configured
            ProviderError: If the API request fails
        """
        pass

    @abstractmethod
    def open_session(self, config: SessionConfig) -> ChatSession:
        """
        Open a new multi-turn session.

        Raises:
            ConfigurationError: If no API key is configured
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the provider (e.g., 'Gemini', 'DeepSeek')."""
        pass

    def __repr__(self) -> str:
        """String representation of the provider."""
        return f"{self.__class__.__name__}(base_url={self.base_url})"
