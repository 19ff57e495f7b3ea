"""Notification route handlers. Notifications are pull-only; the only write is mark-as-read."""

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
    _parse_paging,
    _require_user,
)
from civicalert.db_directory import User
from civicalert.errors import CivicAlertError
from civicalert.scope import require_in_scope, resolve_scope
from civicalert.validation import sanitize_query

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for notification endpoints."""
    from fastapi import APIRouter, Depends

    from civicalert.dashboard import _get_current_user, _get_db

    router = APIRouter()

    @router.get("/notifications")
    async def api_list_notifications(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Paged notifications within the caller's scope; an empty page without a caller."""
        paging = _parse_paging(request.query_params, default_sort="sent_at")
        if isinstance(paging, JSONResponse):
            return paging
        try:
            result = db.list_notifications_scoped(resolve_scope(user), **paging)
        except CivicAlertError as exc:
            return _domain_error(exc)
        unread = db.count_unread_notifications(user.id) if user is not None else 0
        return JSONResponse({**result, "unread": unread})

    @router.get("/notifications/search")
    async def api_search_notifications(
        request: Request,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        query, err = sanitize_query(request.query_params.get("q"))
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        found = db.search_notifications_scoped(query, resolve_scope(user))
        return JSONResponse([n.to_dict() for n in found])

    @router.get("/notifications/user/{user_id}")
    async def api_user_notifications(
        user_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """A user's own feed. Administrators may read anyone's."""
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            require_in_scope(caller, user_id, "Notifications of other users are outside your scope")
            db.get_user(user_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse([n.to_dict() for n in db.get_notifications_for_recipient(user_id)])

    @router.get("/notifications/issue/{issue_id}")
    async def api_issue_notifications(
        issue_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Notifications about one issue, narrowed to those the caller may see."""
        found = db.get_notifications_for_issue(issue_id, resolve_scope(user))
        return JSONResponse([n.to_dict() for n in found])

    @router.put("/notification/{notification_id}/read")
    async def api_mark_read(
        notification_id: str,
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        caller = _require_user(user)
        if isinstance(caller, JSONResponse):
            return caller
        try:
            notification = db.get_notification(notification_id)
            require_in_scope(caller, notification.recipient_id, f"Notification {notification_id} is outside your scope")
            notification = db.mark_notification_read(notification_id)
        except CivicAlertError as exc:
            return _domain_error(exc)
        return JSONResponse(notification.to_dict())

    return router
