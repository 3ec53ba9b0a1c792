"""证据收集 -- 从 Issue 与关联事件构造 TriageInput

事件在入库前已按 app 配置脱敏，这里只做截取与去重。
"""

from britepulse.core.models import Event, EventType, FeedbackPayload, Issue

from .models import TrendDirection, TriageInput

MAX_FEEDBACK = 5
MAX_STACK_TRACES = 3
MAX_ROUTES = 10
MAX_VERSIONS = 5
STACK_TRACE_MAX_LINES = 20

# 趋势判断阈值（百分比）
TREND_THRESHOLD_PCT = 10.0


def _feedback_text(event: Event) -> str | None:
    payload = event.payload
    if not isinstance(payload, FeedbackPayload) or not payload.description:
        return None
    text = payload.description
    if payload.reproduction_steps:
        text += f"\n\nSteps to reproduce:\n{payload.reproduction_steps}"
    return text


def _stack_trace(event: Event) -> str | None:
    stack = getattr(event.payload, "stack", None)
    if not stack:
        return None
    lines = stack.split("\n")
    if len(lines) > STACK_TRACE_MAX_LINES:
        return "\n".join(lines[:STACK_TRACE_MAX_LINES]) + "\n... (truncated)"
    return stack


def _unique(values: list[str], limit: int) -> list[str]:
    return list(dict.fromkeys(values))[:limit]


def trend_direction(current_24h: int, previous_24h: int | None) -> TrendDirection:
    """按前后两个 24 小时窗口的变化率判断趋势"""
    if not previous_24h:
        return "stable"
    change = (current_24h - previous_24h) / previous_24h * 100
    if change > TREND_THRESHOLD_PCT:
        return "increasing"
    if change < -TREND_THRESHOLD_PCT:
        return "decreasing"
    return "stable"


def build_triage_input(
    issue: Issue,
    events: list[Event],
    app_name: str,
    previous_occurrences_24h: int | None = None,
) -> TriageInput:
    """构造 Triage 证据包"""
    feedback: list[str] = []
    stacks: list[str] = []
    for event in events:
        if event.event_type == EventType.FEEDBACK and len(feedback) < MAX_FEEDBACK:
            if (text := _feedback_text(event)) is not None:
                feedback.append(text)
        elif event.is_error and len(stacks) < MAX_STACK_TRACES:
            if (stack := _stack_trace(event)) is not None:
                stacks.append(stack)

    return TriageInput(
        issue_id=issue.issue_id,
        issue_title=issue.title,
        issue_description=issue.description,
        issue_type=issue.issue_type.value,
        current_severity=issue.severity.value,
        app_name=app_name,
        environment=issue.environment.value,
        occurrences_total=issue.counts.occurrences_total,
        occurrences_24h=issue.counts.occurrences_24h,
        unique_users_24h_est=issue.counts.unique_users_24h_est,
        trend_direction=trend_direction(issue.counts.occurrences_24h, previous_occurrences_24h),
        sanitized_feedback=feedback,
        sanitized_stack_traces=stacks,
        affected_routes=_unique([e.route_or_url for e in events], MAX_ROUTES),
        affected_versions=_unique(
            [e.version for e in events if e.version != "unknown"],
            MAX_VERSIONS,
        ),
    )
