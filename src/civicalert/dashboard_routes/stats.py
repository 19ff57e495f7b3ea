"""Dashboard statistics route handler."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from fastapi import APIRouter

from civicalert.core import CivicDB
from civicalert.db_directory import User
from civicalert.scope import resolve_scope


def create_router() -> APIRouter:
    from fastapi import APIRouter, Depends

    from civicalert.dashboard import _get_current_user, _get_db

    router = APIRouter()

    @router.get("/dashboard/stats")
    async def api_dashboard_stats(
        db: CivicDB = Depends(_get_db),
        user: User | None = Depends(_get_current_user),
    ) -> JSONResponse:
        """Counts, groupings and recent issues for the caller; all zero without one."""
        return JSONResponse(db.get_dashboard_stats(resolve_scope(user)))

    return router
