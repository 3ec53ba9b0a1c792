"""LoggingMiddleware

为每个 HTTP 请求绑定 request_id 到 structlog contextvars，记录耗时。
客户端带 X-Request-ID 时沿用，否则生成 ULID。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(ULID())
        start_time = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        log = structlog.get_logger()
        log.debug("request_started")

        response = await call_next(request)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if response.status_code >= 500:
            log.error("request_failed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            log.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
