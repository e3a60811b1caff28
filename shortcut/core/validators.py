"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for user inputs.
These functions help prevent security issues and ensure data integrity.

Security Considerations:
- Input validation prevents injection attacks
- Only http/https destinations are accepted (no javascript:, data:, file: schemes)
- Length limits prevent DoS attacks
"""

import re
from typing import Optional
from urllib.parse import urlparse

from shortcut.core.exceptions import InvalidAliasError

MAX_URL_LENGTH = 2048

ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,30}$")
SHORT_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Paths served by the application itself; an alias equal to one of these
# would be shadowed by (or shadow) a real route.
RESERVED_CODES = frozenset({
    "api", "docs", "redoc", "openapi.json", "health", "static", "admin",
})


def is_valid_url(url: str) -> bool:
    """
    Validate URL format and security.

    Checks that URL is absolute, uses http/https and names a host. The
    scheme check alone keeps javascript:, data: and file: destinations out;
    the same words inside a path or query are ordinary text.

    Args:
        url: The URL string to validate

    Returns:
        True if valid and safe, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    if len(url) > MAX_URL_LENGTH:
        return False

    try:
        result = urlparse(url)
        # Raises for a malformed port
        result.port
    except ValueError:
        return False

    if result.scheme.lower() not in {"http", "https"}:
        return False

    if not result.netloc or not result.hostname:
        return False

    return True


def validate_alias(alias: str) -> str:
    """
    Normalize and validate a user-chosen custom alias.

    Raises:
        InvalidAliasError: If the alias has illegal characters, a bad length,
            or collides with a reserved application path
    """
    alias = (alias or "").strip()
    if not ALIAS_PATTERN.match(alias):
        raise InvalidAliasError(
            alias,
            "Alias must be 3-30 characters of letters, digits, '_' or '-'"
        )
    if alias.lower() in RESERVED_CODES:
        raise InvalidAliasError(alias, "This alias is reserved")
    return alias


def sanitize_short_code(short_code: str) -> Optional[str]:
    """
    Sanitize and validate short code format.

    Short codes are base62 tokens or custom aliases: [0-9a-zA-Z_-]

    Args:
        short_code: The short code to sanitize

    Returns:
        Sanitized short code if valid, None otherwise
    """
    if not short_code or not isinstance(short_code, str):
        return None

    short_code = short_code.strip()

    if len(short_code) > 30:
        return None

    if not SHORT_CODE_PATTERN.match(short_code):
        return None

    return short_code
