"""Error taxonomy shared by the database layer, the HTTP routes, and the CLI.

Each error carries a stable ``code`` and the HTTP ``status_code`` the dashboard
routes translate it to. ``NotFoundError`` is also a ``KeyError`` and the
validation-style errors are also ``ValueError`` so callers can keep catching
the builtin types.
"""

from __future__ import annotations

from typing import Any


class CivicAlertError(Exception):
    """Base class for every domain error raised by civicalert."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


class NotFoundError(CivicAlertError, KeyError):
    """A referenced issue, tag, user, location, or notification does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, ref: str) -> None:
        super().__init__(f"{kind.capitalize()} not found: {ref}", details={"kind": kind, "ref": ref})
        self.kind = kind
        self.ref = ref

    # KeyError.__str__ would repr() the message
    def __str__(self) -> str:
        return self.message


class ConflictError(CivicAlertError, ValueError):
    code = "CONFLICT"
    status_code = 409


class ValidationError(CivicAlertError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 400


class ForbiddenError(CivicAlertError, PermissionError):
    code = "FORBIDDEN"
    status_code = 403


class UnauthenticatedError(CivicAlertError, PermissionError):
    code = "UNAUTHENTICATED"
    status_code = 401
