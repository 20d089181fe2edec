"""
请求追踪中间件

为每个请求建立独立的日志上下文：
- 生成或接收 X-Request-ID，并在响应头中返回
- 请求开始时清空组织上下文（由 require_org_member 在鉴权后设置），
  请求结束后恢复，避免上下文在复用的任务之间串号
- 每个请求记录一行访问日志（方法、路径、状态码、耗时、调用者）

使用示例：
    from app.middleware.request_trace import RequestTraceMiddleware
    app.add_middleware(RequestTraceMiddleware)
"""

import logging
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.infra.logging import RequestTimer, get_logger, organisation_id_var, request_id_var

logger = get_logger(__name__)

# 不记录成功访问日志的路径：探针与高频的访问判定
QUIET_PATHS = ("/healthz", "/readyz", "/favicon.ico")


def _is_quiet(request: Request, status_code: int) -> bool:
    if status_code >= 400:
        return False
    path = request.url.path
    if path in QUIET_PATHS:
        return True
    return request.method == "GET" and path.endswith("/access")


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """
    请求追踪中间件

    响应头：
        X-Request-ID: 请求 ID
        X-Response-Time: 处理耗时
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_token = request_id_var.set(request_id)
        organisation_token = organisation_id_var.set(None)
        timer = RequestTimer()

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                self._log(request, 500, timer, error=str(e))
                raise

            duration_ms = self._log(request, response.status_code, timer)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.0f}ms"
            return response
        finally:
            organisation_id_var.reset(organisation_token)
            request_id_var.reset(request_token)

    @staticmethod
    def _log(request: Request, status_code: int, timer: RequestTimer, error: str | None = None) -> float:
        """写一行访问日志，返回耗时（毫秒）"""
        duration_ms = timer.elapsed_ms()
        if _is_quiet(request, status_code):
            return duration_ms

        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            "user_id": request.headers.get("X-User-Id"),
        }
        if error is not None:
            extra["error"] = error
        logger.log(
            _level_for(status_code),
            f"{request.method} {request.url.path} - {status_code} - {duration_ms:.0f}ms",
            extra=extra,
        )
        return duration_ms
