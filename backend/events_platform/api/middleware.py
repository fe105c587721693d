"""
Per-request correlation id, access log line and latency metric.
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from events_platform.api.router import API_PREFIX
from events_platform.core.logging import get_logger
from events_platform.core.metrics import observe_request

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Upstream ids are echoed into logs and headers, so only accept sane ones
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
PROBE_PATHS = frozenset({"/health", "/metrics"})


def resolve_request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex[:12]


def route_template(request: Request) -> str:
    """
    Matched path template, e.g. /api/v1/events/{event_id}. Depending on
    the FastAPI release, routes included through api_router report their
    path with or without the versioned prefix; both give the same label.
    """
    path = getattr(request.scope.get("route"), "path", None)
    if path is None:
        return "unmatched"
    if request.url.path.startswith(API_PREFIX + "/") and not path.startswith(API_PREFIX + "/"):
        return API_PREFIX + path
    return path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Every log line written while a request is served carries its
    request_id, so a registration or a webhook can be traced end to end.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request)
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - started
            observe_request(request.method, route_template(request), 500, elapsed)
            logger.exception("request_failed", duration_ms=round(elapsed * 1000, 2))
            raise

        elapsed = time.perf_counter() - started
        duration_ms = round(elapsed * 1000, 2)
        observe_request(request.method, route_template(request), response.status_code, elapsed)

        if request.url.path in PROBE_PATHS:
            logger.debug("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        elif response.status_code >= 500:
            logger.error("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
