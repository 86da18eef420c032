"""
Input Validators and Sanitizers

Validation and normalization helpers for link identifiers and target URLs.
"""

import re
from typing import Optional

MAX_URL_LENGTH = 2048


def sanitize_link_id(link_id: str) -> Optional[str]:
    """
    Sanitize and validate a tracking link id.

    Generated ids are 8 hex characters; anything alphanumeric (plus '_' and
    '-') up to 32 characters is accepted so hand-made ids still resolve.

    Returns:
        Sanitized id if valid, None otherwise
    """
    if not link_id or not isinstance(link_id, str):
        return None

    link_id = link_id.strip()

    if len(link_id) > 32:
        return None

    if not re.match(r'^[0-9a-zA-Z_-]+$', link_id):
        return None

    return link_id


def validate_url_length(url: str, max_length: int = MAX_URL_LENGTH) -> bool:
    """
    Validate URL length.

    Args:
        url: The URL to validate
        max_length: Maximum allowed length (default: 2048 per RFC 7230)

    Returns:
        True if URL length is valid, False otherwise
    """
    return bool(url) and len(url) <= max_length


def has_http_scheme(url: str) -> bool:
    """True when the URL already starts with http:// or https://."""
    lowered = url.lower()
    return lowered.startswith("http://") or lowered.startswith("https://")
