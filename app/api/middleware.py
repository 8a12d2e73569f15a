"""
HTTP middleware: proxy scheme, request ids, access logging and request metrics.
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from structlog import get_logger

from app.observability import log_context, metrics

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    # /v1/content/{resource:path} must not explode label cardinality
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class ForwardedProtoMiddleware(BaseHTTPMiddleware):
    """Trust X-Forwarded-Proto from the load balancer in front of the gate."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        proto = request.headers.get("X-Forwarded-Proto")
        if proto in ("http", "https"):
            request.scope["scheme"] = proto
        return await call_next(request)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id to every log entry of the request and time it.

    The id comes from the caller's X-Request-ID header when present and is
    echoed back on the response.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        method = request.method
        path = request.url.path
        started = time.perf_counter()

        with log_context(request_id=request_id):
            in_flight = metrics.http_requests_in_progress.labels(method)
            in_flight.inc()
            try:
                response = await call_next(request)
            except Exception as exc:
                elapsed = time.perf_counter() - started
                metrics.record_http_request(_route_template(request), method, 500, elapsed)
                metrics.record_error(type(exc).__name__, "http_request")
                logger.error(
                    "request_failed",
                    method=method,
                    path=path,
                    duration_seconds=elapsed,
                    exc_info=True,
                )
                raise
            finally:
                in_flight.dec()

            elapsed = time.perf_counter() - started
            metrics.record_http_request(
                _route_template(request), method, response.status_code, elapsed
            )
            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration_seconds=round(elapsed, 4),
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
