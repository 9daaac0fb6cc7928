"""Exception types shared by the provider, routing and editing layers."""

from typing import Any, Optional


class PromptMasterError(Exception):
    """Base exception for PromptMaster."""
    pass


class ConfigurationError(PromptMasterError):
    """Raised when a model or API key needed for a call is not configured."""
    pass


class ProviderError(PromptMasterError):
    """
    Raised when a chat-completion backend rejects or fails a request.

    Attributes:
        status: HTTP status code, when the backend returned one
        code: Provider-level status string (e.g. ``RESOURCE_EXHAUSTED``)
        raw_message: Error text as returned by the backend
        error: Nested error payload from the response body, if any
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        raw_message: Optional[str] = None,
        error: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.raw_message = raw_message if raw_message is not None else message
        self.error = error


class ParseError(PromptMasterError):
    """Raised when a backend expected to return JSON returns something else."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


def get_error_message(error: Any) -> str:
    """Safely extract a displayable message from any error value."""
    if isinstance(error, ProviderError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    message = getattr(error, "message", None)
    if message is not None:
        return str(message)
    return "Unknown error occurred"
