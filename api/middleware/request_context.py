"""
请求上下文中间件

为每个请求确定 request_id（透传 X-Request-ID 或新生成），绑定到 structlog 上下文，
请求结束时记录 request_completed / request_failed 以及耗时。
"""
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger


logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):

    HEADER_NAME = "X-Request-ID"
    QUIET_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        # 异常处理器从 request.state 读取
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - started
        response.headers[self.HEADER_NAME] = request_id
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        if request.url.path not in self.QUIET_PATHS:
            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log("request_completed", status_code=response.status_code, duration=round(duration, 4))
        return response
