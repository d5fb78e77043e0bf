"""FastAPI application factory for vcsync.

Usage::

    from vcsync.api.app import create_app

    app = create_app(controllers=controllers, config=config)

The factory is used by both the production bootstrap (``vcsync.app``) and
the tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vcsync.api.routes import probes, router
from vcsync.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(controllers: Sequence[Any] = (), config: Any = None) -> FastAPI:
    """Create the health/readiness/metrics/status application.

    Args:
        controllers: SyncController instances, one per enabled kind.
        config:      VcSyncConfig; used for status metadata only.
    """
    from vcsync import __version__

    app = FastAPI(
        title="vcsync",
        summary="Virtual cluster object synchronization engine",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    # Store dependencies in app.state so route handlers can access them
    # without module-level globals.
    app.state.controllers = list(controllers)
    app.state.config = config

    app.include_router(probes)
    app.include_router(router, prefix=_API_PREFIX)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="INTERNAL_ERROR", detail="An unexpected error occurred.").model_dump(),
        )

    return app
