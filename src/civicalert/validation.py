"""Shared validation functions for the HTTP and CLI entry points.

Pure functions with no FastAPI or Click dependencies. Each returns
``(cleaned, None)`` on success or ``(fallback, error_message)`` on failure so
callers can decide how to surface the error.
"""

from __future__ import annotations

import unicodedata
from typing import Any

_MAX_TITLE_LENGTH = 200
_MAX_TEXT_LENGTH = 10_000
_MAX_QUERY_LENGTH = 200


def _first_control_char(value: str, *, allow_newlines: bool) -> str | None:
    for ch in value:
        if allow_newlines and ch in "\n\r\t":
            continue
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return ch
    return None


def sanitize_title(value: Any) -> tuple[str, str | None]:
    """Validate and clean an issue title: non-empty, single line, bounded length."""
    if not isinstance(value, str):
        return ("", "title must be a string")
    bad = _first_control_char(value, allow_newlines=False)
    if bad is not None:
        return ("", f"title must not contain control characters (found U+{ord(bad):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "title must not be empty")
    if len(cleaned) > _MAX_TITLE_LENGTH:
        return ("", f"title must be at most {_MAX_TITLE_LENGTH} characters")
    return (cleaned, None)


def sanitize_text(value: Any, *, field: str) -> tuple[str, str | None]:
    """Validate free text such as a description or category. ``None`` becomes ``""``."""
    if value is None:
        return ("", None)
    if not isinstance(value, str):
        return ("", f"{field} must be a string")
    bad = _first_control_char(value, allow_newlines=True)
    if bad is not None:
        return ("", f"{field} must not contain control characters (found U+{ord(bad):04X})")
    if len(value) > _MAX_TEXT_LENGTH:
        return ("", f"{field} must be at most {_MAX_TEXT_LENGTH} characters")
    return (value.strip(), None)


def sanitize_query(value: Any) -> tuple[str, str | None]:
    """Validate a search query. An empty query is allowed and yields no matches."""
    if value is None:
        return ("", None)
    if not isinstance(value, str):
        return ("", "query must be a string")
    cleaned = value.strip()
    if len(cleaned) > _MAX_QUERY_LENGTH:
        return ("", f"query must be at most {_MAX_QUERY_LENGTH} characters")
    return (cleaned, None)


def sanitize_optional_ref(value: Any, *, field: str) -> tuple[str | None, str | None]:
    """Validate an optional id reference: ``None``/empty means absent."""
    if value is None:
        return (None, None)
    if not isinstance(value, str):
        return (None, f"{field} must be a string")
    cleaned = value.strip()
    return (cleaned or None, None)
