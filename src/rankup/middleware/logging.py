# src/rankup/middleware/logging.py

"""Request/response logging middleware for the RankUp API."""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("rankup.api")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and its outcome under one request ID.

    Signal deliveries carry the caller's request ID so retries of the same
    delivery can be correlated; other requests get a fresh one.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        base_extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        started = time.perf_counter()

        logger.info(
            "[%s] %s %s",
            request_id,
            request.method,
            request.url.path,
            extra={
                **base_extra,
                "query_params": str(request.query_params),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.error(
                "[%s] %s %s failed after %.2fms",
                request_id,
                request.method,
                request.url.path,
                elapsed_ms,
                extra={**base_extra, "error": str(e), "duration_ms": elapsed_ms},
                exc_info=True,
            )
            raise

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "[%s] %s %s -> %d (%.2fms)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            extra={
                **base_extra,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response  # type: ignore[no-any-return]
