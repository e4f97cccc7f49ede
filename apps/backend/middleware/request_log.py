"""Middleware: per-request trace id and access log (no bodies, no tokens)."""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("apps.backend.requests")

TRACE_HEADER = "X-Trace-Id"


def new_trace_id() -> str:
    return uuid.uuid4().hex[:16]


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or new_trace_id()
        request.state.trace_id = trace_id[:64]
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)
        response.headers[TRACE_HEADER] = request.state.trace_id
        logger.info(
            "request method=%s path=%s status=%s latency_ms=%s trace_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
            request.state.trace_id,
        )
        return response
