"""Safety policy for computer-use runs: URL blocklist and safety-check acks."""

import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

BLOCKED_DOMAINS = [
    "maliciousbook.com",
    "evilvideos.com",
    "darkwebforum.com",
    "shadytok.com",
    "suspiciouspins.com",
    "ilanbigio.com",
]


class BlockedURLError(Exception):
    """Raised when the browser lands on a blocklisted domain."""


def check_blocklisted_url(url: str) -> None:
    """Raise BlockedURLError if url's host is a blocked domain or a subdomain of one."""
    hostname = urlparse(url).hostname or ""
    for blocked in BLOCKED_DOMAINS:
        if hostname == blocked or hostname.endswith(f".{blocked}"):
            raise BlockedURLError(f"Blocked URL: {url}")


def auto_acknowledge(message: str) -> bool:
    """Safety-check callback that approves everything (unattended runs)."""
    print(f"> safety check: {message}")
    logger.info("Auto-acknowledged safety check: %s", message)
    return True
