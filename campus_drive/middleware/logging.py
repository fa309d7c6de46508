from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("cd.request")

REQUEST_ID_HEADER = "x-request-id"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (echoed back to the gateway) and logs one line per response."""

    async def dispatch(self, request: Request, call_next):
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "actor_id": request.headers.get("x-actor-id"),
                "actor_role": request.headers.get("x-actor-role"),
            },
        )
        response.headers["X-Request-Id"] = request_id
        return response
