"""FastAPI application exposing the profiler's read-only query API."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from alerts.engine import AlertStore
from alerts.rules import build_alerts
from api.health import HealthChecker
from api.middleware import install_middleware
from api.models import (
    AlertResponse,
    AllocationStatResponse,
    CaptureResponse,
    ErrorResponse,
    RetentionStatResponse,
    SnapshotResponse,
    StatusResponse,
    SuggestionResponse,
)
from api.prometheus import CONTENT_TYPE_LATEST, PrometheusExporter
from api.version import VERSION
from capture.heap import CaptureError
from profiler.config import ProfilerConfig
from profiler.engine import Profiler

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100
DEFAULT_TOP_LIMIT = 10

router = APIRouter()

NOT_AVAILABLE = {503: {"model": ErrorResponse, "description": "Check failed"}}
CAPTURE_FAILED = {500: {"model": ErrorResponse, "description": "Heap capture failed"}}


def _parse_limit(raw: str | None, default: int) -> int:
    """Parse a ``limit`` query value; junk falls back to the default, negatives to 0."""
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(value, 0)


def _error(status_code: int, message: str, detail: str | None = None) -> JSONResponse:
    content: dict[str, str] = {"error": message}
    if detail:
        content["detail"] = detail
    return JSONResponse(status_code=status_code, content=content)


def _profiler(request: Request) -> Profiler:
    return request.app.state.profiler


@router.get("/health/live", response_model=StatusResponse, responses=NOT_AVAILABLE)
def health_live(request: Request):
    reason = request.app.state.health.liveness()
    if reason is not None:
        logger.error("api: liveness check failed: %s", reason)
        return _error(503, "service not live", reason)
    return {"status": "ok"}


@router.get("/health/ready", response_model=StatusResponse, responses=NOT_AVAILABLE)
def health_ready(request: Request):
    reason = request.app.state.health.readiness()
    if reason is not None:
        logger.warning("api: readiness check failed: %s", reason)
        return _error(503, "service not ready", reason)
    return {"status": "ready"}


@router.get("/v1/metrics/latest", response_model=SnapshotResponse)
def metrics_latest(request: Request):
    """Return the newest snapshot, or an all-zero payload before the first cycle."""
    return _profiler(request).latest().to_dict()


@router.get("/v1/metrics/history", response_model=list[SnapshotResponse])
def metrics_history(request: Request, limit: str | None = Query(None)):
    snapshots = _profiler(request).history(_parse_limit(limit, DEFAULT_HISTORY_LIMIT))
    logger.debug("api: served metrics history count=%d", len(snapshots))
    return [snapshot.to_dict() for snapshot in snapshots]


@router.get("/v1/metrics/allocations/top", response_model=list[AllocationStatResponse])
def top_allocations(request: Request, limit: str | None = Query(None)):
    stats = _profiler(request).top_allocations(_parse_limit(limit, DEFAULT_TOP_LIMIT))
    return [stat.to_dict() for stat in stats]


@router.get("/v1/metrics/retentions/top", response_model=list[RetentionStatResponse])
def top_retentions(request: Request, limit: str | None = Query(None)):
    stats = _profiler(request).top_retentions(_parse_limit(limit, DEFAULT_TOP_LIMIT))
    return [stat.to_dict() for stat in stats]


@router.get("/v1/suggestions", response_model=list[SuggestionResponse])
def suggestions(request: Request):
    return [suggestion.to_dict() for suggestion in _profiler(request).suggestions()]


@router.get("/v1/alerts", response_model=list[AlertResponse])
def alerts(request: Request):
    """Evaluate alert rules against the latest snapshot and store the result."""
    profiler = _profiler(request)
    built = build_alerts(
        profiler.latest(),
        profiler.suggestions(),
        profiler.config,
        dt.datetime.now(dt.timezone.utc),
    )
    request.app.state.alert_store.replace(built)
    logger.debug("api: served alerts count=%d", len(built))
    return [alert.to_dict() for alert in built]


@router.api_route(
    "/v1/capture/heap",
    methods=["GET", "POST"],
    response_model=CaptureResponse,
    responses=CAPTURE_FAILED,
)
def capture_heap(request: Request):
    """Write a heap snapshot immediately, ignoring the automatic cooldown."""
    trigger = _profiler(request).capture_trigger
    try:
        path = trigger.capture_or_raise(dt.datetime.now(dt.timezone.utc))
    except CaptureError as exc:
        logger.warning("api: manual heap capture failed: %s", exc)
        return _error(500, "heap capture failed")
    logger.info("api: manual heap snapshot captured path=%s", path)
    return {"path": str(path)}


def _metrics_endpoint(request: Request) -> Response:
    exporter: PrometheusExporter = request.app.state.exporter
    return Response(content=exporter.render(), media_type=CONTENT_TYPE_LATEST)


def create_app(
    config: ProfilerConfig,
    *,
    profiler: Profiler | None = None,
    alert_store: AlertStore | None = None,
    health: HealthChecker | None = None,
    service_tag: str = "",
    start_profiler: bool = True,
) -> FastAPI:
    """Wire a profiler, alert store, health checker and exporter into an app.

    The sampling loop starts with the app's lifespan and is cancelled on
    shutdown; pass ``start_profiler=False`` to drive cycles manually.
    """
    profiler = profiler or Profiler(config)
    health = health or HealthChecker(profiler)
    exporter = PrometheusExporter(profiler)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if start_profiler:
            health.mark_started()
            profiler.start()
        try:
            yield
        finally:
            await profiler.stop()

    app = FastAPI(title="memprof-agent", version=VERSION, lifespan=lifespan)
    app.state.config = config
    app.state.profiler = profiler
    app.state.alert_store = alert_store or AlertStore()
    app.state.health = health
    app.state.exporter = exporter

    app.include_router(router)
    if config.prometheus_enabled:
        app.add_api_route("/metrics", _metrics_endpoint, methods=["GET"], include_in_schema=False)

    install_middleware(
        app,
        profiler,
        base_tag=service_tag,
        observe_latency=lambda path, seconds: exporter.request_duration.labels(path=path).observe(
            seconds
        ),
    )
    return app
