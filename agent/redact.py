"""Secret and payload scrubbing for agent debug output.

Two jobs:
- mask API keys and bearer tokens before they reach the console
- replace inline screenshot data URLs in Responses API items with a
  short placeholder so debug dumps stay readable

Short tokens (< 18 chars) are fully masked. Longer tokens preserve
the first 6 and last 4 characters for debuggability.
"""

import copy
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# Known API key prefixes -- match the prefix + contiguous token chars
_PREFIX_PATTERNS = [
    r"sk-[A-Za-z0-9_-]{10,}",           # OpenAI
    r"sk_[A-Za-z0-9_-]{10,}",           # Kernel
    r"sess-[A-Za-z0-9_-]{10,}",         # OpenAI session keys
]

_SECRET_ENV_NAMES = r"(?:API_?KEY|TOKEN|SECRET|PASSWORD)"
_ENV_ASSIGN_RE = re.compile(
    rf"([A-Z_]*{_SECRET_ENV_NAMES}[A-Z_]*)\s*=\s*(['\"]?)(\S+)\2",
    re.IGNORECASE,
)

_AUTH_HEADER_RE = re.compile(
    r"(Authorization:\s*Bearer\s+)(\S+)",
    re.IGNORECASE,
)

_PREFIX_RE = re.compile(
    r"(?<![A-Za-z0-9_-])(" + "|".join(_PREFIX_PATTERNS) + r")(?![A-Za-z0-9_-])"
)

_DATA_URL_RE = re.compile(r"data:image/[a-z]+;base64,[A-Za-z0-9+/=]+")

IMAGE_PLACEHOLDER = "[image omitted]"


def _mask_token(token: str) -> str:
    """Mask a token, preserving prefix for long tokens."""
    if len(token) < 18:
        return "***"
    return f"{token[:6]}...{token[-4:]}"


def redact_sensitive_text(text: str) -> str:
    """Mask secrets and inline images in a block of text.

    Safe to call on any string -- non-matching text passes through unchanged.
    """
    if not text:
        return text

    text = _DATA_URL_RE.sub(IMAGE_PLACEHOLDER, text)
    text = _PREFIX_RE.sub(lambda m: _mask_token(m.group(1)), text)

    def _redact_env(m):
        name, quote, value = m.group(1), m.group(2), m.group(3)
        return f"{name}={quote}{_mask_token(value)}{quote}"
    text = _ENV_ASSIGN_RE.sub(_redact_env, text)

    text = _AUTH_HEADER_RE.sub(
        lambda m: m.group(1) + _mask_token(m.group(2)),
        text,
    )
    return text


def sanitize_item(item: Any) -> Any:
    """Return a copy of a Responses API item with screenshot payloads dropped.

    computer_call_output items carry the full PNG as a data URL; everything
    else is returned as a deep copy.
    """
    if not isinstance(item, dict):
        return item
    clean = copy.deepcopy(item)
    if clean.get("type") == "computer_call_output":
        output = clean.get("output")
        if isinstance(output, dict) and "image_url" in output:
            output["image_url"] = IMAGE_PLACEHOLDER
    return clean


class RedactingFormatter(logging.Formatter):
    """Log formatter that redacts secrets from all log messages."""

    def format(self, record: logging.LogRecord) -> str:
        original = super().format(record)
        return redact_sensitive_text(original)
