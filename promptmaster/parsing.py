"""Cleanup and parsing of raw model output."""

import json
import re
from typing import Any

from .errors import ParseError

THINK_PATTERN = re.compile(r'<think>(.*?)</think>', re.DOTALL)
CODE_FENCE_PATTERN = re.compile(r'```(?:json|JSON)?[ \t]*\n?|\n?```')


def strip_thinking(content: str) -> str:
    """
    Remove <think>...</think> sections emitted by reasoning models.

    Returns the content unchanged when there are no thinking tags, or when
    removing them would leave nothing behind.
    """
    if not content:
        return content

    if not THINK_PATTERN.search(content):
        return content

    response_without_think = THINK_PATTERN.sub('', content).strip()
    return response_without_think if response_without_think else content


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences some models wrap around JSON."""
    return CODE_FENCE_PATTERN.sub('', content or '').strip()


def parse_json(content: str) -> Any:
    """
    Parse model output as JSON, tolerating a surrounding code fence.

    Raises:
        ParseError: If the cleaned text is not valid JSON
    """
    cleaned = strip_code_fences(content)
    try:
        return json.loads(cleaned)
    except ValueError as e:
        raise ParseError(f"Could not parse model response as JSON: {e}", raw_text=content) from e
