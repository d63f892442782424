"""Input sanitization for user-supplied text and URLs.

Text is normalized (control characters dropped, whitespace collapsed,
trimmed) and then stripped of known script-injection patterns. HTML
entities are left alone; escaping happens wherever the text is rendered.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

DANGEROUS_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
]

BLOCKED_URL_PREFIXES = ("javascript:", "data:", "vbscript:", "file:")
ALLOWED_URL_SCHEMES = ("http", "https")

# Control characters except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(value: str) -> str:
    """Drop control characters, collapse whitespace runs and trim."""
    value = _CONTROL_CHARS.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def remove_dangerous_patterns(value: str) -> str:
    for pattern in DANGEROUS_PATTERNS:
        value = pattern.sub("", value)
    return value


def sanitize_string(value: Optional[str]) -> str:
    """
    Sanitize free text while preserving ordinary punctuation.

    Args:
        value: Raw user input

    Returns:
        str: Normalized text with dangerous patterns removed ("" for empty input)

    Example:
        >>> sanitize_string("Here's a <script>alert(1)</script> test")
        "Here's a  test"
    """
    if not value or not isinstance(value, str):
        return ""
    return remove_dangerous_patterns(normalize_whitespace(value))


def _rebuild(parts) -> str:
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            parts.path or "/",
            parts.query,
            parts.fragment,
        )
    )


def _is_valid_host(netloc: str) -> bool:
    return bool(netloc) and not any(ch.isspace() for ch in netloc)


def sanitize_url(url: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a URL.

    Only http and https are accepted. Hosts without a scheme
    (``example.com/page``) get ``https://`` prepended.

    Args:
        url: Raw URL input

    Returns:
        The normalized URL, or None if the URL is empty, malformed or
        uses a blocked protocol.
    """
    if not url or not isinstance(url, str):
        return None

    trimmed = url.strip()
    if trimmed.lower().startswith(BLOCKED_URL_PREFIXES):
        logger.warning(f"Blocked dangerous URL protocol: {trimmed}")
        return None

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        logger.warning(f"Invalid URL: {trimmed}")
        return None

    if parts.scheme:
        if parts.scheme.lower() not in ALLOWED_URL_SCHEMES:
            logger.warning(f"Blocked non-HTTP URL protocol: {parts.scheme}")
            return None
        if not _is_valid_host(parts.netloc):
            logger.warning(f"Invalid URL: {trimmed}")
            return None
        return _rebuild(parts)

    if "://" not in trimmed and not trimmed.startswith("/"):
        try:
            parts = urlsplit(f"https://{trimmed}")
        except ValueError:
            parts = None
        if parts is not None and _is_valid_host(parts.netloc):
            return _rebuild(parts)

    logger.warning(f"Invalid URL: {trimmed}")
    return None


LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """
    Escape LIKE wildcards so a search term matches literally.

    Use with ``column.ilike(pattern, escape=LIKE_ESCAPE)``.
    """
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
