"""Shared validation utilities"""

import html
import re
from typing import Optional

STATUS_PATTERN = re.compile(r"^[A-Za-z][A-Za-z_ -]{0,29}$")


def sanitize_notes(value: Optional[str]) -> Optional[str]:
    """
    Normalize free-text notes: escape HTML, collapse whitespace.

    Args:
        value: Raw notes string

    Returns:
        Sanitized notes, or None when the input is empty
    """
    if value is None:
        return None

    value = re.sub(r"\s+", " ", str(value)).strip()
    if not value:
        return None

    return html.escape(value, quote=True)


def validate_status(status: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    """
    Validate a status value against the allowed set (case-insensitive).

    Returns:
        The canonical spelling from ``allowed``

    Raises:
        ValueError: If the status is not one of ``allowed``
    """
    if status is None:
        return None

    status = status.strip()
    if not STATUS_PATTERN.match(status):
        raise ValueError("Invalid status format")

    for candidate in allowed:
        if candidate.lower() == status.lower():
            return candidate

    raise ValueError(f"Status must be one of: {', '.join(allowed)}")
