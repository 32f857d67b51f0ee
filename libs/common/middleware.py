"""Request tracing for the fulfillment API.

``RequestContextMiddleware`` binds a request id (taken from ``X-Request-ID``
or generated) to the logging context, echoes it on the response and logs
one line per request with its status and duration. Outbound calls made
while handling the request forward the same id (see ``service_client``).
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"
QUIET_PATHS = frozenset({"/health"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            path=request.url.path,
            method=request.method,
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s crashed after %.1fms",
                request.method,
                request.url.path,
                (time.perf_counter() - started) * 1000,
            )
            clear_request_context()
            raise

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = str(elapsed_ms)

        if request.url.path not in QUIET_PATHS:
            # 4xx are expected state-machine rejections; keep them visible
            level = logger.warning if response.status_code >= 400 else logger.info
            level(
                "%s %s -> %s",
                request.method,
                request.url.path,
                response.status_code,
                extra={
                    "extra_fields": {
                        "status_code": response.status_code,
                        "duration_ms": elapsed_ms,
                    }
                },
            )

        clear_request_context()
        return response


def add_observability_middleware(app: FastAPI) -> None:
    """Configure logging and install request tracing on ``app``."""
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
