"""Severity Classifier -- 新建 Issue 的初始严重级别

只在创建 Issue 时运行一次，之后由人工或 AI 分析调整，不会对已有 Issue 重算。
"""

from .models.enums import Environment, EventType, FeedbackCategory, Severity
from .models.event import BackendErrorPayload, EventPayload, FeedbackPayload

_CRITICAL_MARKERS = ("critical", "fatal")


def _is_critical_backend(payload: BackendErrorPayload) -> bool:
    error_type = (payload.error_type or "").lower()
    if any(marker in error_type for marker in _CRITICAL_MARKERS):
        return True
    return payload.http_status is not None and payload.http_status >= 500


def infer_severity(
    event_type: EventType,
    environment: Environment | str,
    payload: EventPayload,
) -> Severity:
    """按事件类型、环境和 payload 推断初始严重级别"""
    in_prod = environment == Environment.PROD

    if event_type == EventType.BACKEND_ERROR:
        if in_prod and isinstance(payload, BackendErrorPayload) and _is_critical_backend(payload):
            return Severity.P1
        return Severity.P2

    if event_type == EventType.FRONTEND_ERROR:
        return Severity.P2 if in_prod else Severity.P3

    if isinstance(payload, FeedbackPayload) and payload.category == FeedbackCategory.BUG:
        return Severity.P2 if in_prod else Severity.P3
    return Severity.P3
