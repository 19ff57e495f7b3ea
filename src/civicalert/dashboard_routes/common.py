"""Shared helpers for the HTTP route modules: error envelopes, body parsing, paging, access checks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from civicalert.db_directory import User
from civicalert.errors import CivicAlertError
from civicalert.scope import require_admin, require_user

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _domain_error(exc: CivicAlertError) -> JSONResponse:
    """Translate a domain error into its error envelope."""
    return _error_response(exc.message, exc.code, exc.status_code, exc.details)


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _safe_int(value: str, name: str, *, min_value: int | None = None, max_value: int | None = None) -> int | JSONResponse:
    """Parse a query-param string to int, returning a 400 error response on failure."""
    try:
        result = int(value)
    except (ValueError, TypeError):
        return _error_response(
            f'Invalid value for {name}: "{value}". Must be an integer.',
            "VALIDATION_ERROR",
            400,
        )
    if min_value is not None and result < min_value:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be >= {min_value}.",
            "VALIDATION_ERROR",
            400,
        )
    if max_value is not None and result > max_value:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be <= {max_value}.",
            "VALIDATION_ERROR",
            400,
        )
    return result


def _parse_paging(
    params: Mapping[str, str],
    *,
    default_sort: str,
    default_direction: str = "desc",
) -> dict[str, Any] | JSONResponse:
    """Extract ``page``, ``size``, ``sort`` and ``direction`` from query params.

    Pages are zero-based. Sort keys are checked by the database layer.
    """
    page = _safe_int(params.get("page", "0"), "page", min_value=0)
    if not isinstance(page, int):
        return page
    size = _safe_int(params.get("size", str(DEFAULT_PAGE_SIZE)), "size", min_value=1, max_value=MAX_PAGE_SIZE)
    if not isinstance(size, int):
        return size
    return {
        "page": page,
        "size": size,
        "sort": params.get("sort", default_sort),
        "direction": params.get("direction", default_direction),
    }


def _optional_str(body: Mapping[str, Any], key: str) -> str | None | JSONResponse:
    value = body.get(key)
    if value is not None and not isinstance(value, str):
        return _error_response(f"{key} must be a string", "VALIDATION_ERROR", 400)
    return value


# ---------------------------------------------------------------------------
# Access checks
# ---------------------------------------------------------------------------


def _require_user(user: User | None) -> User | JSONResponse:
    try:
        return require_user(user)
    except CivicAlertError as exc:
        return _domain_error(exc)


def _require_admin(user: User | None) -> User | JSONResponse:
    try:
        return require_admin(user)
    except CivicAlertError as exc:
        return _domain_error(exc)
