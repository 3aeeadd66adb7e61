"""Shared validation functions for all entry points.

Pure functions with no MCP, FastAPI, or Click dependencies.
Each returns ``(cleaned_value, None)`` on success or ``(empty, error_message)``.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

from issues_tracker.db_base import VALID_PRIORITIES, VALID_STATUSES

_MAX_NAME_LENGTH = 128
_MAX_TITLE_LENGTH = 500
_MAX_DESCRIPTION_LENGTH = 50_000
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt input limit

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _has_control_chars(value: str) -> str | None:
    for ch in value:
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return f"U+{ord(ch):04X}"
    return None


def sanitize_name(value: Any, field: str = "name", *, max_length: int = _MAX_NAME_LENGTH) -> tuple[str, str | None]:
    """Validate and clean a single-line name (user name, tag name, title).

    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", f"{field} must be a string")
    # Check before stripping: reject "\nbad" rather than silently absorbing the newline.
    bad = _has_control_chars(value)
    if bad:
        return ("", f"{field} must not contain control characters (found {bad})")
    cleaned = value.strip()
    if not cleaned:
        return ("", f"{field} must not be empty")
    if len(cleaned) > max_length:
        return ("", f"{field} must be at most {max_length} characters")
    return (cleaned, None)


def sanitize_title(value: Any) -> tuple[str, str | None]:
    return sanitize_name(value, "title", max_length=_MAX_TITLE_LENGTH)


def sanitize_description(value: Any) -> tuple[str, str | None]:
    """Descriptions are multi-line; only type and length are checked."""
    if value is None:
        return ("", None)
    if not isinstance(value, str):
        return ("", "description must be a string")
    if len(value) > _MAX_DESCRIPTION_LENGTH:
        return ("", f"description must be at most {_MAX_DESCRIPTION_LENGTH} characters")
    return (value, None)


def sanitize_email(value: Any) -> tuple[str, str | None]:
    """Lower-case and trim an email address, rejecting obviously malformed ones."""
    if not isinstance(value, str):
        return ("", "email must be a string")
    cleaned = value.strip().lower()
    if not cleaned:
        return ("", "email must not be empty")
    if len(cleaned) > 254 or not _EMAIL_RE.match(cleaned):
        return ("", f"Invalid email address: {value!r}")
    return (cleaned, None)


def validate_status(value: Any) -> tuple[str, str | None]:
    if value not in VALID_STATUSES:
        return ("", f"Invalid status {value!r}. Valid statuses: {', '.join(VALID_STATUSES)}")
    return (value, None)


def validate_priority(value: Any) -> tuple[str, str | None]:
    if value not in VALID_PRIORITIES:
        return ("", f"Invalid priority {value!r}. Valid priorities: {', '.join(VALID_PRIORITIES)}")
    return (value, None)


def validate_color(value: Any) -> tuple[str, str | None]:
    """Tag colors are CSS hex colors: ``#abc`` or ``#aabbcc``."""
    if not isinstance(value, str) or not _COLOR_RE.match(value.strip()):
        return ("", f"Invalid color {value!r}. Expected a hex color like #3b82f6")
    return (value.strip().lower(), None)


def validate_id(value: Any, field: str) -> tuple[int, str | None]:
    """Validate a positive integer row ID (``bool`` is rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        return (0, f"{field} must be an integer")
    if value < 1:
        return (0, f"{field} must be a positive integer")
    return (value, None)


def validate_password(value: Any) -> str | None:
    """Return an error message, or None when the password is acceptable."""
    if not isinstance(value, str):
        return "password must be a string"
    if len(value) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
    return None
