"""TraceMiddleware

Issue 相关请求把 issue_id 绑定到 structlog contextvars，
同一 Issue 的操作日志可以按 issue_id 串起来。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 长度
_ID_LENGTH = 26


def extract_issue_id(path: str) -> str | None:
    """从 /api/issues/{issue_id}[/...] 提取 issue_id"""
    parts = path.strip("/").split("/")
    for i, part in enumerate(parts[:-1]):
        if part == "issues" and len(parts[i + 1]) == _ID_LENGTH:
            return parts[i + 1]
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """Issue 级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        issue_id = extract_issue_id(request.url.path)
        if issue_id:
            structlog.contextvars.bind_contextvars(issue_id=issue_id)

        return await call_next(request)
