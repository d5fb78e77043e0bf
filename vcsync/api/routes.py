"""HTTP routes: liveness, readiness, metrics and status."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from vcsync.api.schemas import HealthResponse, KindStatus, ReadinessResponse, StatusResponse
from vcsync.models.cache import CacheReadiness

probes = APIRouter()
router = APIRouter()


def _version() -> str:
    from vcsync import __version__

    return __version__


@probes.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Liveness: the process is up and serving."""
    return HealthResponse(status="ok", version=_version())


@probes.get("/readyz", response_model=ReadinessResponse)
async def readyz(request: Request) -> JSONResponse:
    """Readiness: every kind has both caches synced and its workers running."""
    controllers = request.app.state.controllers
    not_ready = []
    for controller in controllers:
        warming = (
            controller.virtual_cache.readiness() == CacheReadiness.WARMING
            or controller.host_cache.readiness() == CacheReadiness.WARMING
        )
        if warming or not controller.queue.running:
            not_ready.append(controller.kind)
    ready = bool(controllers) and not not_ready
    body = ReadinessResponse(ready=ready, not_ready=not_ready)
    return JSONResponse(status_code=200 if ready else 503, content=body.model_dump())


@probes.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    config = request.app.state.config
    translate = config.translate if config is not None else None
    return StatusResponse(
        version=_version(),
        instance=translate.name if translate else "",
        multi_namespace=translate.multi_namespace if translate else False,
        target_namespace=translate.target_namespace if translate else "",
        kinds=[KindStatus(**controller.status()) for controller in request.app.state.controllers],
    )
