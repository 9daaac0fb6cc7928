"""Markdown and JSON exports of a prompt, plus share links."""

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, quote, unquote, urlencode, urlparse

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
DEFAULT_SHARE_BASE_URL = "https://promptmaster.app"

# Characters encodeURIComponent leaves alone on top of quote()'s defaults
URI_COMPONENT_SAFE = "!*'()"


def export_as_markdown(prompt: str, context: Optional[str] = None, title: Optional[str] = None) -> str:
    """Render the prompt (and its context, when given) as a Markdown document."""
    date = datetime.now().strftime("%Y-%m-%d")

    md = f"# {title or 'Prompt'}\n\n"
    md += f"> Generated with PromptMaster AI on {date}\n\n"

    if context:
        md += f"## Context\n\n{context}\n\n"

    md += f"## Prompt\n\n```\n{prompt}\n```\n"
    return md


def export_as_json(
    prompt: str,
    context: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Versioned JSON envelope; ``metadata`` keys are merged in last."""
    data = {
        "version": EXPORT_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "prompt": prompt,
        "context": context or None,
    }
    if metadata:
        data.update(metadata)
    return json.dumps(data, ensure_ascii=False, indent=2)


def generate_share_link(prompt: str, context: Optional[str] = None, base_url: str = DEFAULT_SHARE_BASE_URL) -> str:
    """URL carrying the prompt and context in its ``share`` query parameter."""
    payload = json.dumps({"p": prompt, "c": context or ""}, ensure_ascii=False, separators=(",", ":"))
    escaped = quote(payload, safe=URI_COMPONENT_SAFE)
    encoded = base64.b64encode(escaped.encode("ascii")).decode("ascii")
    return f"{base_url.rstrip('/')}?{urlencode({'share': encoded})}"


def parse_share_link(url: str) -> Optional[Dict[str, Optional[str]]]:
    """
    Extract ``{"prompt", "context"}`` from a share link.

    Returns None when the link has no ``share`` parameter or it cannot be
    decoded.
    """
    values = parse_qs(urlparse(url).query).get("share")
    if not values:
        return None

    try:
        decoded = unquote(base64.b64decode(values[0], validate=True).decode("ascii"))
        data = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.error("Failed to parse share link: %s", e)
        return None

    if not isinstance(data, dict):
        logger.error("Failed to parse share link: payload is not an object")
        return None

    return {
        "prompt": data.get("p") or "",
        "context": data.get("c") or None,
    }
