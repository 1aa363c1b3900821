"""ASGI entry-point for the FastAPI application.

This module
1. instantiates the :class:`fastapi.FastAPI` application;
2. wires the transcript, trash and save routers located in ``voicenotes.api``;
3. registers global exception handlers and middleware; and
4. ensures the local fallback store is ready (data directory, tables).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from voicenotes.api import api_router
from voicenotes.config import settings
from voicenotes.errors import TranscriptError
from voicenotes.logging_config import LOG_DIR as APP_LOG_DIR
from voicenotes.logging_config import setup_logging
from voicenotes.services.cache import TranscriptCache
from voicenotes.utils.storage import DATA_ROOT, ensure_dir_exists, sqlite_parent_dir


# ---------------------------------------------------------------------------
# Logging must be configured as soon as possible so that any errors during
# import/start-up are captured.
# ---------------------------------------------------------------------------
setup_logging()
logger = logging.getLogger(__name__)


def _error_body(detail: str, kind: str) -> dict:
    return {"success": False, "errorMessage": detail, "kind": kind, "detail": detail}


def create_app() -> FastAPI:  # noqa: D401 – factory nomenclature is fine
    """Wire and return the FastAPI application instance."""

    app = FastAPI(
        title="Voice Notes API",
        version="0.1.0",
        docs_url="/api/docs",
    )

    # One cache per process, shared by every request.
    app.state.transcript_cache = TranscriptCache(ttl_seconds=settings.CACHE_TTL_SECONDS)

    # ------------------------------------------------------------------
    # Start-up checks
    # ------------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_checks() -> None:  # noqa: D401
        logger.info("Running start-up checks …")

        for path in (APP_LOG_DIR, DATA_ROOT):
            try:
                ensure_dir_exists(Path(path))
            except OSError as exc:  # pragma: no cover
                logger.critical("Cannot create/access directory %s – %s", path, exc)
            else:
                writable = os.access(str(path), os.W_OK)
                logger.info("Directory %s is %swritable", path, "" if writable else "NOT ")

        if settings.remote_enabled:
            logger.info("Remote transcript store: %s", settings.REMOTE_URL)
        else:
            logger.warning("REMOTE_URL is not set; transcripts are kept in the local store only")

        logger.info("Start-up checks finished.")

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(  # noqa: D401
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.error("Request validation error: %s", exc.errors())
        body = _error_body("Invalid request", "validation")
        body["detail"] = jsonable_errors(exc)
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(  # noqa: D401
        _request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        logger.error("HTTP exception %s: %s", exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail), "http"))

    @app.exception_handler(TranscriptError)
    async def _transcript_error_handler(  # noqa: D401
        _request: Request,
        exc: TranscriptError,
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Transcript operation failed (%s): %s", exc.kind, exc.detail, exc_info=True)
        else:
            logger.info("Transcript request rejected (%s): %s", exc.kind, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.detail, exc.kind))

    @app.exception_handler(Exception)
    async def _generic_error_handler(  # noqa: D401
        _request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content=_error_body("Internal Server Error", "error"))

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------

    app.include_router(api_router, prefix="/api")

    # ------------------------------------------------------------------
    # Ensure the local store schema exists (development convenience only).
    # ------------------------------------------------------------------

    try:
        from voicenotes.db.database import create_tables  # local import to avoid circular deps

        db_dir = sqlite_parent_dir(settings.DATABASE_URL)
        if db_dir is not None:
            ensure_dir_exists(db_dir)
        create_tables()
    except Exception as exc:  # pragma: no cover
        logger.exception("Failed to create DB schema: %s", exc)

    # ------------------------------------------------------------------
    # Miscellaneous endpoints
    # ------------------------------------------------------------------

    @app.get("/api/health")
    async def _health() -> dict[str, str]:  # noqa: D401
        return {"status": "ok"}

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw input values (they may hold transcript text)."""
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()]


# Instantiate at import time so `uvicorn voicenotes.main:app` works.
app: FastAPI = create_app()
