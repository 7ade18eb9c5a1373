"""Request logging middleware."""

import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from structlog.contextvars import bound_contextvars

from buildcart.utils.logging import get_logger

REQUEST_ID_HEADER = "X-Request-ID"

logger = get_logger("api")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds the request's identity to the log context and logs its outcome.

    ``request_id`` (taken from the caller or generated) and ``user_id`` are
    bound for the whole request, including the deployment it may start, and
    the request id is echoed back to the caller.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        start_time = time.perf_counter()

        with bound_contextvars(
            request_id=request_id,
            user_id=request.headers.get("X-User-Id"),
        ):
            logger.info("request.started", method=request.method, path=request.url.path)
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "request.failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "request.completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
