"""Issue lifecycle route handlers: report, read, edit, status, tags, search."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from civicalert.core import CivicDB
from civicalert.dashboard_routes.common import (
    _domain_error,
    _error_response,
    _optional_str,
    _parse_json_body,
    _parse_paging,
    _require_admin,
    _require_user,
    _safe_int,
)
from civicalert.db_directory import User
from civicalert.errors import CivicAlertError
from civicalert.scope import require_editor, require_in_scope, resolve_scope
from civicalert.validation import sanitize_optional_ref, sanitize_query, sanitize_text, sanitize_title

logger = logging.getLogger(__name__)


def _parse_issue_fields(body: dict[str, object]) -> dict[str, object] | JSONResponse:
    title, err = sanitize_title(body.get("title"))
    if err:
        return _error_response(err, "VALIDATION_ERROR", 400)
    fields: dict[str, object] = {"title": title}
    for key in ("description", "category"):
        value, err = sanitize_text(body.get(key), field=key)
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        fields[key] = value
    location_id, err = sanitize_optional_ref(body.get("location_id"), field="location_id")
    if err:
        return _error_response(err, "VALIDATION_ERROR", 400)
    fields["location_id"] = location_id
    return fields


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def create_router() -> APIRouter:
    """Build the APIRouter for issue endpoints.

    NOTE: All handlers are async despite doing synchronous SQLite I/O. This
    keeps DB access on the event loop thread.
    """
    from fastapi import APIRouter, Depends

    from civicalert.dashboard import _get_current_user, _get_db

    router = APIRouter()

    @router.post("/issues")
    async def api_create_issue(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Report a new issue as the calling user. Any supplied status is ignored."""
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        fields = _parse_issue_fields(body)
        if isinstance(fields, JSONResponse):
            return fields
        photo_url = _optional_str(body, "photo_url")
        if isinstance(photo_url, JSONResponse):
            return photo_url
        tag_ids = body.get("tag_ids")
        if tag_ids is not None and (not isinstance(tag_ids, list) or not all(isinstance(t, str) for t in tag_ids)):
            return _error_response("tag_ids must be a list of strings", "VALIDATION_ERROR", 400)
        try:
            issue = db.create_issue(
                str(fields["title"]),
                description=str(fields["description"]),
                category=str(fields["category"]),
                location_id=fields["location_id"],  # type: ignore[arg-type]
                reporter_id=caller.id,
                photo_url=photo_url,
                tag_ids=tag_ids,
            )
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(issue.to_dict(), status_code=201)

    @router.get("/issues")
    async def api_list_issues(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Paged issue listing within the caller's scope."""
        paging = _parse_paging(request.query_params, default_sort="date_reported")
        if isinstance(paging, JSONResponse):
            return paging
        try:
            result = db.list_issues_scoped(
                resolve_scope(user),
                status=request.query_params.get("status"),
                category=request.query_params.get("category"),
                **paging,
            )
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(result)

    @router.get("/issue/{issue_id}")
    async def api_issue_detail(
        issue_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            issue = db.get_issue(issue_id)
            require_in_scope(caller, issue.reported_by, f"Issue {issue_id} is outside your scope")
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(issue.to_dict())

    @router.put("/issue/{issue_id}")
    async def api_update_issue(
        issue_id: str,
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Replace title, description, category and location."""
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        fields = _parse_issue_fields(body)
        if isinstance(fields, JSONResponse):
            return fields
        try:
            msg = f"Only an administrator or the reporter may edit issue {issue_id}"
            require_editor(caller, db.get_issue(issue_id).reported_by, msg)
            issue = db.update_issue(
                issue_id,
                title=str(fields["title"]),
                description=str(fields["description"]),
                category=str(fields["category"]),
                location_id=fields["location_id"],  # type: ignore[arg-type]
            )
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(issue.to_dict())

    @router.delete("/issue/{issue_id}")
    async def api_delete_issue(
        issue_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            msg = f"Only an administrator or the reporter may delete issue {issue_id}"
            require_editor(caller, db.get_issue(issue_id).reported_by, msg)
            db.delete_issue(issue_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse({"deleted": issue_id})

    @router.put("/issue/{issue_id}/status")
    async def api_update_status(
        issue_id: str,
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Move an issue to a new status. Accepts ``{"status": ...}`` or ``?status=``."""
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        status = request.query_params.get("status")
        if status is None:
            body = await _parse_json_body(request)
            if isinstance(body, JSONResponse):
                return body
            status = body.get("status")
        if not isinstance(status, str) or not status.strip():
            return _error_response("status is required", "VALIDATION_ERROR", 400)
        try:
            issue = db.update_status(issue_id, status)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(issue.to_dict())

    @router.get("/issue/{issue_id}/tags")
    async def api_issue_tags(
        issue_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            issue = db.get_issue(issue_id)
            require_in_scope(caller, issue.reported_by, f"Issue {issue_id} is outside your scope")
            tags = db.get_issue_tags(issue_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse([t.to_dict() for t in tags])

    @router.post("/issue/{issue_id}/tags/{tag_id}")
    async def api_add_tag(
        issue_id: str,
        tag_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            issue = db.add_tag(issue_id, tag_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(issue.to_dict())

    @router.delete("/issue/{issue_id}/tags/{tag_id}")
    async def api_remove_tag(
        issue_id: str,
        tag_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            issue = db.remove_tag(issue_id, tag_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(issue.to_dict())

    @router.get("/search")
    async def api_search(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Full-text issue search within the caller's scope."""
        query, err = sanitize_query(request.query_params.get("q"))
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        limit = _safe_int(request.query_params.get("limit", "50"), "limit", min_value=1, max_value=100)
        if not isinstance(limit, int):
            return limit
        issues = db.search_issues(query, resolve_scope(user), limit=limit)
        return JSONResponse({"results": [i.to_dict() for i in issues], "total": len(issues)})

    return router
