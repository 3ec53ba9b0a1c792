"""Issue 上下文文件 -- 给外部 AI 编码助手的 Markdown / JSON

只包含聚合指标和事实观察（路由、版本、错误类型、用户反馈、最近错误事件），
不包含 ai_analysis 里的根因假设和修复建议，由使用方结合代码库自行分析。
事件在入库前已脱敏。
"""

from datetime import UTC, datetime
from typing import Any, Literal

from britepulse.core.models import App, Event, FeedbackPayload, Issue, IssueType
from pydantic import BaseModel, Field

from .evidence import MAX_FEEDBACK, MAX_ROUTES, MAX_VERSIONS

MARKDOWN_MAX_EVENTS = 10
JSON_MAX_EVENTS = 20
CONTEXT_STACK_MAX_LINES = 25
COMPONENT_STACK_MAX_LINES = 15

_UNKNOWN = "unknown"
_ANONYMOUS = "anonymous"

InstructionType = Literal["bug_fix", "feature_request"]

_BUG_FIX_INSTRUCTIONS = [
    "**Your task:**",
    "1. Analyze the stack traces and error patterns",
    "2. Search the codebase to identify the root cause",
    "3. Propose a fix with specific code changes",
    "4. Suggest tests to verify the fix",
    "",
    "**If you need additional context, ask for:**",
    "- Specific file contents mentioned in stack traces",
    "- Related component or module code",
    "- API/database schemas if relevant",
    "- Recent changes to affected files",
]

_FEATURE_REQUEST_INSTRUCTIONS = [
    "**Your task:**",
    "1. Understand the user's request and their context (page, workflow)",
    "2. Search the codebase to identify where this feature would be implemented",
    "3. Propose an implementation approach with specific files to modify",
    "4. Consider UX implications and edge cases",
    "5. Suggest tests to verify the implementation",
    "",
    "**If you need additional context, ask for:**",
    "- Current implementation of related features",
    "- UI/UX patterns used in the app",
    "- API schemas if backend changes are needed",
    "- Design system components available",
]


class ContextMetrics(BaseModel):
    total_occurrences: int
    occurrences_24h: int
    unique_users_24h: int


class ContextReporter(BaseModel):
    email: str | None = None
    user_id: str | None = None


class ContextIssue(BaseModel):
    id: str
    title: str
    description: str
    type: IssueType
    severity: str
    status: str
    environment: str
    created_at: datetime
    last_seen_at: datetime | None = Field(default=None, description="同 created_at 时省略")
    metrics: ContextMetrics | None = Field(default=None, description="仅多次出现的错误")
    reported_by: ContextReporter | None = None


class ContextEvent(BaseModel):
    id: str
    type: str
    timestamp: datetime
    route: str
    version: str | None = None
    payload: dict[str, Any]


class IssueContext(BaseModel):
    """Issue 上下文（JSON 形式），按 exclude_none 输出"""

    generated_at: datetime
    issue: ContextIssue
    app_id: str
    app_name: str
    affected_routes: list[str] = Field(default_factory=list)
    affected_versions: list[str] | None = None
    patterns: list[str] | None = Field(default=None, description="仅错误类 Issue")
    user_feedback: list[str] = Field(default_factory=list)
    events: list[ContextEvent] | None = Field(default=None, description="仅有错误事件时")
    instruction_type: InstructionType


def _is_error_issue(issue: Issue) -> bool:
    return issue.issue_type == IssueType.BUG


def _known(value: str | None) -> bool:
    return bool(value) and value != _UNKNOWN


def _identified_user(user_id: str | None) -> bool:
    return bool(user_id) and user_id != _ANONYMOUS


def affected_routes(events: list[Event]) -> list[str]:
    return list(dict.fromkeys(e.route_or_url for e in events if _known(e.route_or_url)))[
        :MAX_ROUTES
    ]


def affected_versions(events: list[Event]) -> list[str]:
    return list(dict.fromkeys(e.version for e in events if _known(e.version)))[:MAX_VERSIONS]


def extract_patterns(events: list[Event]) -> list[str]:
    """从事件中归纳事实性观察（不含推测）"""
    patterns: list[str] = []

    routes = {e.route_or_url for e in events}
    if len(routes) == 1 and len(events) > 1:
        patterns.append(f"All {len(events)} occurrences on route: {next(iter(routes))}")

    versions = list(dict.fromkeys(e.version for e in events if e.version != _UNKNOWN))
    if len(versions) == 1 and len(events) > 1:
        patterns.append(f"All occurrences in version: {versions[0]}")
    elif len(versions) > 1:
        patterns.append(f"Affects multiple versions: {', '.join(versions)}")

    error_types = {
        error_type
        for e in events
        if e.is_error and (error_type := getattr(e.payload, "error_type", None))
    }
    if len(error_types) == 1:
        patterns.append(f"Consistent error type: {next(iter(error_types))}")

    user_ids = {e.user.user_id for e in events if _identified_user(e.user.user_id)}
    if user_ids:
        patterns.append(f"Affects {len(user_ids)} identified user(s)")

    return patterns


def extract_user_feedback(events: list[Event]) -> list[str]:
    feedback: list[str] = []
    for event in events:
        if len(feedback) >= MAX_FEEDBACK:
            break
        payload = event.payload
        if not isinstance(payload, FeedbackPayload):
            continue
        parts = [f"**Category:** {payload.category}", f"**Description:** {payload.description}"]
        if payload.reproduction_steps:
            parts.append(f"**Reproduction Steps:** {payload.reproduction_steps}")
        feedback.append("\n".join(parts))
    return feedback


def _head_lines(text: str, max_lines: int) -> str:
    return "\n".join(text.split("\n")[:max_lines])


def _instruction_type(issue: Issue) -> InstructionType:
    return "bug_fix" if _is_error_issue(issue) else "feature_request"


def build_issue_context(
    issue: Issue,
    events: list[Event],
    app: App,
    generated_at: datetime | None = None,
) -> IssueContext:
    """构造 JSON 形式的 Issue 上下文"""
    timestamps = issue.timestamps
    context_issue = ContextIssue(
        id=issue.issue_id,
        title=issue.title,
        description=issue.description,
        type=issue.issue_type,
        severity=issue.severity.value,
        status=issue.status.value,
        environment=issue.environment.value,
        created_at=timestamps.created_at,
        last_seen_at=(
            timestamps.last_seen_at if timestamps.last_seen_at != timestamps.created_at else None
        ),
    )
    if _is_error_issue(issue) and issue.counts.occurrences_total > 1:
        context_issue.metrics = ContextMetrics(
            total_occurrences=issue.counts.occurrences_total,
            occurrences_24h=issue.counts.occurrences_24h,
            unique_users_24h=issue.counts.unique_users_24h_est,
        )
    reporter = issue.reported_by
    if reporter is not None and (reporter.email or _identified_user(reporter.user_id)):
        context_issue.reported_by = ContextReporter(
            email=reporter.email,
            user_id=reporter.user_id if _identified_user(reporter.user_id) else None,
        )

    error_events = [e for e in events if e.is_error][:JSON_MAX_EVENTS]
    return IssueContext(
        generated_at=generated_at or datetime.now(UTC),
        issue=context_issue,
        app_id=app.app_id,
        app_name=app.name,
        affected_routes=affected_routes(events),
        affected_versions=affected_versions(events) or None,
        patterns=extract_patterns(events) if _is_error_issue(issue) else None,
        user_feedback=extract_user_feedback(events),
        events=[
            ContextEvent(
                id=e.event_id,
                type=e.event_type.value,
                timestamp=e.timestamp,
                route=e.route_or_url,
                version=e.version if _known(e.version) else None,
                payload=e.payload.model_dump(mode="json", exclude_none=True),
            )
            for e in error_events
        ]
        or None,
        instruction_type=_instruction_type(issue),
    )


def _render_event(index: int, event: Event) -> list[str]:
    lines = [
        f"### Event {index} ({event.event_type})",
        f"- **Timestamp:** {event.timestamp.isoformat()}",
        f"- **Route:** {event.route_or_url}",
    ]
    if _known(event.version):
        lines.append(f"- **Version:** {event.version}")
    if _identified_user(event.user.user_id):
        lines.append(f"- **User Role:** {event.user.role or _UNKNOWN}")
    lines.append("")

    payload = event.payload
    if error_type := getattr(payload, "error_type", None):
        lines.extend([f"**Error Type:** {error_type}", ""])
    if message := getattr(payload, "message", None):
        lines.extend([f"**Message:** {message}", ""])
    if stack := getattr(payload, "stack", None):
        lines.extend(
            ["**Stack Trace:**", "```", _head_lines(stack, CONTEXT_STACK_MAX_LINES), "```", ""]
        )
    if component_stack := getattr(payload, "component_stack", None):
        lines.extend(
            [
                "**Component Stack (React):**",
                "```",
                _head_lines(component_stack, COMPONENT_STACK_MAX_LINES),
                "```",
                "",
            ]
        )
    if source_file := getattr(payload, "source_file", None):
        line_number = getattr(payload, "line_number", None) or "?"
        column_number = getattr(payload, "column_number", None) or "?"
        lines.extend([f"**Source:** {source_file}:{line_number}:{column_number}", ""])
    return lines


def render_issue_context_markdown(
    issue: Issue,
    events: list[Event],
    app: App,
    generated_at: datetime | None = None,
) -> str:
    """渲染 Markdown 上下文文件，可直接粘贴给 AI 编码助手"""
    generated_at = generated_at or datetime.now(UTC)
    timestamps = issue.timestamps
    lines = [
        f"# Issue Context: {issue.title}",
        f"Generated: {generated_at.isoformat()}",
        "",
        "## Issue Summary",
        f"- **ID:** {issue.issue_id}",
        f"- **App:** {app.name} ({issue.environment})",
        f"- **Type:** {issue.issue_type}",
        f"- **Severity:** {issue.severity}",
        f"- **Status:** {issue.status}",
        f"- **Created:** {timestamps.created_at.isoformat()}",
    ]
    if timestamps.last_seen_at != timestamps.created_at:
        lines.append(f"- **Last Seen:** {timestamps.last_seen_at.isoformat()}")
    lines.append("")

    if _is_error_issue(issue) and issue.counts.occurrences_total > 1:
        lines.extend(
            [
                "## Metrics",
                f"- **Total Occurrences:** {issue.counts.occurrences_total}",
                f"- **24h Occurrences:** {issue.counts.occurrences_24h}",
                f"- **Unique Users (24h est):** {issue.counts.unique_users_24h_est}",
                "",
            ]
        )

    lines.extend(["## Description", issue.description, ""])

    reporter = issue.reported_by
    if reporter is not None and (reporter.email or _identified_user(reporter.user_id)):
        lines.append("## Reported By")
        if reporter.email:
            lines.append(f"- **Email:** {reporter.email}")
        if _identified_user(reporter.user_id):
            lines.append(f"- **User ID:** {reporter.user_id}")
        lines.append("")

    sections: list[tuple[str, list[str]]] = [
        ("Pattern Observations", extract_patterns(events) if _is_error_issue(issue) else []),
        ("Affected Routes", affected_routes(events)),
        ("Affected Versions", affected_versions(events)),
    ]
    for heading, items in sections:
        if items:
            lines.append(f"## {heading}")
            lines.extend(f"- {item}" for item in items)
            lines.append("")

    feedback = extract_user_feedback(events)
    if feedback:
        lines.append("## User Feedback")
        for i, text in enumerate(feedback, start=1):
            lines.extend([f"### Feedback {i}", text, ""])

    error_events = [e for e in events if e.is_error][:MARKDOWN_MAX_EVENTS]
    if error_events:
        lines.extend(["## Recent Events", ""])
        for i, event in enumerate(error_events, start=1):
            lines.extend(_render_event(i, event))

    lines.extend(
        [
            "---",
            "## Instructions for AI Agent",
            "",
            "You have been provided with context about an issue from our monitoring system.",
            "",
        ]
    )
    if _instruction_type(issue) == "bug_fix":
        lines.extend(_BUG_FIX_INSTRUCTIONS)
    else:
        lines.extend(_FEATURE_REQUEST_INSTRUCTIONS)
    lines.append("")
    return "\n".join(lines)
