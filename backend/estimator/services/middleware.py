"""Request timing / tracing and security header middleware."""
import re
import time
import uuid
import logging
from typing import Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("estimator-api.middleware")

SKIP_LOG_PATHS = {"/health", "/metrics"}

# /api/jobs/{id}, /api/pages/{id}, /api/takeoffs/{id}
_RESOURCE_PATH = re.compile(r"^/api/(jobs|pages|takeoffs)/([^/]+)")
_RESOURCE_FIELD = {"jobs": "job_id", "pages": "page_id", "takeoffs": "takeoff_id"}


def resource_context(path: str) -> Dict[str, str]:
    """Log extras naming the job, page or takeoff a request path addresses."""
    match = _RESOURCE_PATH.match(path)
    if not match or match.group(2) == "calculate":
        return {}
    return {_RESOURCE_FIELD[match.group(1)]: match.group(2)}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags every response with X-Request-ID and X-Process-Time (ms) and logs
    one "request completed" line per request, except health and metrics probes.
    Slow recalculations show up here first, so the addressed resource id is
    logged with the timing.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        path = request.url.path
        if path not in SKIP_LOG_PATHS:
            logger.info(
                "request completed",
                extra={
                    "http_method": request.method,
                    "http_path": path,
                    "http_status": response.status_code,
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                    **resource_context(path),
                },
            )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Estimates carry pricing; never let intermediaries cache them
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
        return response
