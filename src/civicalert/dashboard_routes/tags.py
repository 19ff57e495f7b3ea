"""Tag catalog route handlers. Reads are open; every mutation needs an administrator."""

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
)
from civicalert.db_directory import User
from civicalert.errors import CivicAlertError
from civicalert.scope import is_admin
from civicalert.validation import sanitize_query

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for tag endpoints."""
    from fastapi import APIRouter, Depends

    from civicalert.dashboard import _get_current_user, _get_db

    router = APIRouter()

    @router.post("/tags")
    async def api_create_tag(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name = body.get("name")
        if not isinstance(name, str):
            return _error_response("name must be a string", "VALIDATION_ERROR", 400)
        description = _optional_str(body, "description")
        if isinstance(description, JSONResponse):
            return description
        try:
            tag = db.create_tag(name, description)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(tag.to_dict(), status_code=201)

    @router.get("/tags")
    async def api_list_tags(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Administrators page through the whole catalog; everyone else sees active tags."""
        paging = _parse_paging(request.query_params, default_sort="name", default_direction="asc")
        if isinstance(paging, JSONResponse):
            return paging
        try:
            result = db.list_tags_paginated(active_only=not is_admin(user), **paging)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(result)

    @router.get("/tags/active")
    async def api_active_tags(db: CivicDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([t.to_dict() for t in db.list_active_tags()])

    @router.get("/tags/search")
    async def api_search_tags(request: Request, db: CivicDB = Depends(_get_db)) -> JSONResponse:
        """Case-insensitive substring match on tag name (``?q=`` or ``?name=``)."""
        raw = request.query_params.get("q", request.query_params.get("name"))
        query, err = sanitize_query(raw)
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        return JSONResponse([t.to_dict() for t in db.search_tags(query)])

    @router.get("/tags/used")
    async def api_used_tags(db: CivicDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([t.to_dict() for t in db.list_used_tags()])

    @router.get("/tags/unused")
    async def api_unused_tags(db: CivicDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([t.to_dict() for t in db.list_unused_tags()])

    @router.get("/tag/{tag_id}")
    async def api_tag_detail(tag_id: str, db: CivicDB = Depends(_get_db)) -> JSONResponse:
        try:
            tag = db.get_tag(tag_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(tag.to_dict())

    @router.put("/tag/{tag_id}")
    async def api_update_tag(
        tag_id: str,
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Rename a tag. ``active`` defaults to true when omitted; ``description`` is kept when omitted."""
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name = body.get("name")
        if not isinstance(name, str):
            return _error_response("name must be a string", "VALIDATION_ERROR", 400)
        description = _optional_str(body, "description")
        if isinstance(description, JSONResponse):
            return description
        active = body.get("active", True)
        if not isinstance(active, bool):
            return _error_response("active must be a boolean", "VALIDATION_ERROR", 400)
        try:
            tag = db.update_tag(tag_id, name, description, active)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(tag.to_dict())

    @router.put("/tag/{tag_id}/deactivate")
    async def api_deactivate_tag(
        tag_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            tag = db.deactivate_tag(tag_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(tag.to_dict())

    @router.put("/tag/{tag_id}/activate")
    async def api_activate_tag(
        tag_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            tag = db.activate_tag(tag_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(tag.to_dict())

    @router.delete("/tag/{tag_id}")
    async def api_delete_tag(
        tag_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_admin(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            detached = db.delete_tag(tag_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse({"deleted": tag_id, "detached_issue_ids": detached})

    return router
