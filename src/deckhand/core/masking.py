"""URL and token masking utilities.

Centralizes credential masking so tokens spliced into repository URLs never
leak into logs, error messages or status output.
"""

import logging
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

__all__ = ["mask_url", "mask_token"]

TOKEN_PREFIX_LENGTH = 4
MASK = "***"


def mask_url(url: str | None) -> str:
    """Mask the userinfo part of a URL, keeping scheme, host and path.

    Args:
        url: URL to mask, or None.

    Returns:
        URL with any ``user:password@`` or ``token@`` replaced by ``***@``,
        or "(not configured)".

    Examples:
        >>> mask_url("https://ghp_abc123@github.com/acme/shop.git")
        'https://***@github.com/acme/shop.git'
        >>> mask_url("https://github.com/acme/shop.git")
        'https://github.com/acme/shop.git'
        >>> mask_url("git@github.com:acme/shop.git")  # scp-like, no secret
        'git@github.com:acme/shop.git'
        >>> mask_url(None)
        '(not configured)'
    """
    if not url:
        return "(not configured)"

    parts = urlsplit(url)
    if not parts.scheme or "@" not in parts.netloc:
        return url

    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, f"{MASK}@{host}", parts.path, parts.query, parts.fragment))


def mask_token(token: str | None, prefix_length: int = TOKEN_PREFIX_LENGTH) -> str:
    """Mask token showing only prefix.

    Args:
        token: Token to mask, or None.
        prefix_length: Characters to show before '***'.

    Returns:
        Masked token (e.g., "ghp_***") or "(not configured)".

    Examples:
        >>> mask_token("ghp_1234567890")
        'ghp_***'
        >>> mask_token(None)
        '(not configured)'
    """
    if not token:
        return "(not configured)"
    if len(token) <= prefix_length * 2:
        return MASK
    return f"{token[:prefix_length]}{MASK}"
