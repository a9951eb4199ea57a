"""
FastAPI application factory for the drill engine's operator API.

Routes:
- /api/drill/*       -> drill status, manual zone logging
- /api/session/*     -> start, abort, end, new session, assignment, calibration
- /api/calibration/* -> ROI editing
- /api/preview.jpg   -> camera preview with ROI overlay
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exceptions import (
    AcquisitionError,
    ConfigurationError,
    DrillError,
    SessionStateError,
    VideoNotReadyError,
)

from .routes import api

logger = logging.getLogger(__name__)


def _status_code(error: DrillError) -> int:
    if isinstance(error, SessionStateError):
        return 409
    if isinstance(error, ConfigurationError):
        return 422
    if isinstance(error, (AcquisitionError, VideoNotReadyError)):
        return 503
    return 500


def create_app(ctx) -> FastAPI:
    """Create the FastAPI app around a DrillContext."""
    app = FastAPI(
        title="Lacrosse Drill Engine",
        version="0.1.0",
        description="Reaction and shot placement drills driven by camera motion and audio cues",
    )
    app.state.ctx = ctx

    # CORS for development (Vite dev server)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DrillError)
    async def drill_error_handler(request: Request, exc: DrillError):
        status = _status_code(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(exc.to_dict(), status_code=status)

    app.include_router(api.router, prefix="/api")
    return app
