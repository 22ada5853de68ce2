"""Per-request logging and correlation ids."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from trackcer.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One line when a request comes in, one when it leaves.

    Hey future me - the mobile client may send its own X-Correlation-ID. We keep it, so
    "sync failed at 12:03" from a support report can be grepped on both sides. The id
    goes back out on every response, errors included.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        context = {
            "method": request.method,
            "path": request.url.path,
            "user_header": request.headers.get("X-User-Id"),
        }
        logger.info(
            f"→ {request.method} {request.url.path}",
            extra={
                **context,
                "query_params": str(request.query_params),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"Unhandled error in {request.method} {request.url.path}",
                extra={
                    **context,
                    "duration_ms": _elapsed_ms(started),
                    "error_type": type(e).__name__,
                },
            )
            raise

        status_code = response.status_code
        duration_ms = _elapsed_ms(started)
        mark = "✓" if status_code < 400 else "✗"
        logger.log(
            logging.WARNING if status_code >= 500 else logging.INFO,
            f"{mark} {request.method} {request.url.path} → {status_code} ({duration_ms}ms)",
            extra={**context, "status_code": status_code, "duration_ms": duration_ms},
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
