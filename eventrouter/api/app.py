"""FastAPI application factory for the eventrouter probe endpoints.

Usage::

    from eventrouter.api.app import create_app

    app = create_app(informer=informer, queue=dispatch_queue)

Endpoints:
    GET /healthz  -- liveness, always 200 while the process serves requests.
    GET /readyz   -- 200 once the informer has synced, 503 before.
    GET /metrics  -- Prometheus exposition of the default registry.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from eventrouter.api.schemas import ErrorResponse, HealthResponse, ReadinessResponse

_log = structlog.get_logger(component="api.app")


def create_app(informer: Any, queue: Any = None) -> FastAPI:
    """Create the probe/metrics application.

    Args:
        informer: EventInformer (``has_synced``, ``state``, ``len()``).
        queue:    Optional DispatchQueue (``pending``, ``in_flight``).
    """
    from eventrouter import __version__

    app = FastAPI(
        title="eventrouter",
        summary="Kubernetes event router probes and metrics",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.informer = informer
    app.state.queue = queue

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.get("/readyz", response_model=ReadinessResponse)
    async def readyz(request: Request) -> JSONResponse:
        informer = request.app.state.informer
        queue = request.app.state.queue
        body = ReadinessResponse(
            ready=bool(informer.has_synced),
            informer_state=str(informer.state),
            cached_events=len(informer),
            queue_pending=queue.pending if queue is not None else 0,
            queue_in_flight=queue.in_flight if queue is not None else 0,
        )
        return JSONResponse(status_code=200 if body.ready else 503, content=body.model_dump())

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error("unhandled_exception", path=str(request.url.path), method=request.method, error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="INTERNAL_ERROR", detail="An unexpected error occurred.").model_dump(),
        )

    return app
