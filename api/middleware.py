"""HTTP middleware: request ids, access logs, error recovery, tracker injection."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from profiler.engine import Profiler
from profiler.tracker import NOOP_TRACKER, TrackerProtocol, join_tag

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

Tagger = Callable[[Request], str]
CallNext = Callable[[Request], Awaitable[Response]]


def default_tagger(request: Request) -> str:
    """Tag requests as ``"<METHOD> <path>"``."""
    return f"{request.method} {request.url.path or '/'}"


def get_tracker(request: Request) -> TrackerProtocol:
    """FastAPI dependency returning the tracker bound to the current request."""
    return getattr(request.state, "tracker", NOOP_TRACKER)


def _route_path(request: Request) -> str:
    # Route templates keep the latency histogram's label set bounded.
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


def install_middleware(
    app: FastAPI,
    profiler: Profiler,
    *,
    base_tag: str = "",
    tagger: Tagger | None = None,
    observe_latency: Callable[[str, float], None] | None = None,
) -> None:
    tagger = tagger or default_tagger

    @app.middleware("http")
    async def _track_allocations(request: Request, call_next: CallNext) -> Response:
        request.state.tracker = profiler.tracker(join_tag(base_tag, tagger(request)))
        return await call_next(request)

    @app.middleware("http")
    async def _recover(request: Request, call_next: CallNext) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception(
                "api: unhandled error method=%s path=%s request_id=%s",
                request.method,
                request.url.path,
                getattr(request.state, "request_id", "-"),
            )
            return JSONResponse(status_code=500, content={"error": "internal server error"})

    # Registered last so it runs outermost and every log line carries the id.
    @app.middleware("http")
    async def _request_id_and_log(request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers[REQUEST_ID_HEADER] = request_id
        if observe_latency is not None:
            observe_latency(_route_path(request), elapsed)
        logger.info(
            "api: %s %s status=%d duration_ms=%d request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            int(elapsed * 1000),
            request_id,
        )
        return response
