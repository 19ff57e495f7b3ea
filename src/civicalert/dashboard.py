"""HTTP API for civicalert.

A single-deployment FastAPI app. A module-level ``_db`` is set at startup and
injected via ``Depends(_get_db)``; the caller is resolved from an
``Authorization: Bearer <token>`` header through the session store and
injected via ``Depends(_get_current_user)``. A missing, unknown or expired
token resolves to no caller: list, count and search routes then return empty
results and mutating routes answer 401.

Usage:
    civicalert serve                 # http://127.0.0.1:8390
    civicalert serve --port 9000
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends
from fastapi.responses import JSONResponse
from starlette.requests import Request

from civicalert.core import DB_FILENAME, DEFAULT_PORT, CivicDB, find_civic_root, read_config
from civicalert.db_directory import User
from civicalert.db_sessions import DEFAULT_SESSION_TTL_MINUTES
from civicalert.logging import setup_logging

logger = logging.getLogger(__name__)

_db: CivicDB | None = None


def _get_db() -> CivicDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _get_current_user(request: Request, db: CivicDB = Depends(_get_db)) -> User | None:
    """Resolve the caller from the bearer token, or None when there is no valid session."""
    token = _bearer_token(request)
    if token is None:
        return None
    user = db.resolve_session(token)
    if user is None:
        logger.info("Rejected unknown or expired session token")
    return user


def create_app() -> Any:
    """Create the FastAPI application with all API endpoints."""
    from fastapi import FastAPI

    from civicalert.dashboard_routes import issues, notifications, stats, tags

    app = FastAPI(title="CivicAlert", docs_url=None, redoc_url=None)

    app.include_router(issues.create_router(), prefix="/api")
    app.include_router(tags.create_router(), prefix="/api")
    app.include_router(notifications.create_router(), prefix="/api")
    app.include_router(stats.create_router(), prefix="/api")

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.get("/api/me")
    async def api_me(user: User | None = Depends(_get_current_user)) -> JSONResponse:
        if user is None:
            return JSONResponse({"user": None})
        return JSONResponse({"user": user.to_dict()})

    return app


def main(port: int | None = None) -> None:
    """Start the API server for the .civicalert/ project found from the cwd."""
    import uvicorn

    global _db

    civic_dir = find_civic_root()
    setup_logging(civic_dir)
    config = read_config(civic_dir)
    _db = CivicDB(
        civic_dir / DB_FILENAME,
        prefix=config.get("prefix", "civic"),
        session_ttl_minutes=config.get("session_ttl_minutes", DEFAULT_SESSION_TTL_MINUTES),
        check_same_thread=False,
    )
    _db.initialize()

    port = port or config.get("port", DEFAULT_PORT)
    app = create_app()
    print(f"CivicAlert API: http://127.0.0.1:{port}")
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
