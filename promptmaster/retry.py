"""Bounded exponential backoff for rate-limited provider calls."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 2000

RATE_LIMIT_STATUS = 429
RATE_LIMIT_CODE = "RESOURCE_EXHAUSTED"


async def wait(ms: int) -> None:
    """Suspend the current task for ``ms`` milliseconds."""
    await asyncio.sleep(ms / 1000)


def _signals_rate_limit(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, int) and not isinstance(value, bool):
        return value == RATE_LIMIT_STATUS
    return str(value) in (str(RATE_LIMIT_STATUS), RATE_LIMIT_CODE)


def _nested_error_signals_rate_limit(nested: Any) -> bool:
    if nested is None:
        return False
    if isinstance(nested, dict):
        # Bodies often arrive as {"error": {...}}
        inner = nested.get("error")
        if isinstance(inner, dict):
            nested = inner
        return _signals_rate_limit(nested.get("code")) or _signals_rate_limit(nested.get("status"))
    return (
        _signals_rate_limit(getattr(nested, "code", None))
        or _signals_rate_limit(getattr(nested, "status", None))
    )


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Decide whether an error means the caller is being rate-limited.

    Checks, in order: the HTTP status, the numeric or provider status code,
    a nested error object, and finally the message text.
    """
    status = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if _signals_rate_limit(status):
        return True

    if _signals_rate_limit(getattr(error, "code", None)):
        return True

    if _nested_error_signals_rate_limit(getattr(error, "error", None)):
        return True

    message = getattr(error, "message", None)
    if not isinstance(message, str):
        message = str(error)
    return "429" in message or "quota" in message


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = DEFAULT_RETRIES,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
) -> T:
    """
    Run ``operation``, retrying on rate-limit errors.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        retries: Number of retries allowed after the first call
        base_delay_ms: Delay before the first retry; doubled on each retry

    Returns:
        The operation's result

    Raises:
        The original exception when it is not a rate-limit error or when
        retries are exhausted.
    """
    delay = base_delay_ms
    remaining = retries
    while True:
        try:
            return await operation()
        except Exception as e:
            if remaining <= 0 or not is_rate_limit_error(e):
                raise
            logger.warning(
                "Quota exceeded (429). Retrying in %dms... (%d attempts left)",
                delay,
                remaining,
            )
            await wait(delay)
            remaining -= 1
            delay *= 2
