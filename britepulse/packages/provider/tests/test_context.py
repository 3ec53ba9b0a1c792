"""Issue 上下文文件构造测试"""

from datetime import timedelta

import pytest
from britepulse.core.models import (
    Environment,
    Issue,
    IssueCounts,
    IssueTimestamps,
    IssueType,
    ReporterInfo,
    Severity,
)
from britepulse.provider.context import (
    CONTEXT_STACK_MAX_LINES,
    MARKDOWN_MAX_EVENTS,
    build_issue_context,
    extract_patterns,
    render_issue_context_markdown,
)


def _issue(now, **overrides) -> Issue:
    data = {
        "issue_id": "01JISSUE000000000000000001",
        "app_id": "demo-app",
        "environment": Environment.PROD,
        "severity": Severity.P1,
        "title": "TypeError: boom",
        "description": "Route: /orders/123",
        "issue_type": IssueType.BUG,
        "counts": IssueCounts(occurrences_total=3, occurrences_24h=2, unique_users_24h_est=2),
        "timestamps": IssueTimestamps(created_at=now - timedelta(hours=2), last_seen_at=now),
    }
    data.update(overrides)
    return Issue(**data)


@pytest.fixture
def app(make_app):
    return make_app()


class TestPatterns:
    def test_single_route_and_version(self, make_error_event):
        events = [make_error_event(user_id="u1"), make_error_event(user_id="u2")]

        assert extract_patterns(events) == [
            "All 2 occurrences on route: /orders/123",
            "All occurrences in version: 1.2.3",
            "Consistent error type: TypeError",
            "Affects 2 identified user(s)",
        ]

    def test_mixed_versions_and_anonymous_users(self, make_error_event):
        events = [
            make_error_event(route="/a", user_id="anonymous"),
            make_error_event(route="/b", error_type="RangeError").model_copy(
                update={"version": "2.0.0"}
            ),
        ]

        assert extract_patterns(events) == [
            "Affects multiple versions: 1.2.3, 2.0.0",
            "Affects 1 identified user(s)",
        ]

    def test_single_event_has_no_route_pattern(self, make_error_event):
        patterns = extract_patterns([make_error_event()])
        assert not any(p.startswith("All ") for p in patterns)


class TestBuildIssueContext:
    def test_error_issue(self, now, app, make_error_event):
        events = [make_error_event(), make_error_event(user_id="user-2")]

        context = build_issue_context(_issue(now), events, app, generated_at=now)
        body = context.model_dump(mode="json", exclude_none=True)

        assert body["issue"]["last_seen_at"] == now.isoformat().replace("+00:00", "Z")
        assert body["issue"]["metrics"] == {
            "total_occurrences": 3,
            "occurrences_24h": 2,
            "unique_users_24h": 2,
        }
        assert body["instruction_type"] == "bug_fix"
        assert [e["route"] for e in body["events"]] == ["/orders/123", "/orders/123"]
        assert body["events"][0]["version"] == "1.2.3"

    def test_optional_sections_omitted(self, now, app, make_feedback_event):
        issue = _issue(
            now,
            issue_type=IssueType.FEATURE,
            counts=IssueCounts(),
            timestamps=IssueTimestamps(created_at=now, last_seen_at=now),
        )

        context = build_issue_context(issue, [make_feedback_event()], app, generated_at=now)
        body = context.model_dump(mode="json", exclude_none=True)

        assert "last_seen_at" not in body["issue"]
        assert "metrics" not in body["issue"]
        assert "reported_by" not in body["issue"]
        assert "patterns" not in body
        assert "events" not in body
        assert "affected_versions" not in body
        assert body["instruction_type"] == "feature_request"

    def test_anonymous_reporter_keeps_email_only(self, now, app):
        issue = _issue(now, reported_by=ReporterInfo(user_id="anonymous", email="po@example.com"))

        context = build_issue_context(issue, [], app)

        assert context.issue.reported_by.email == "po@example.com"
        assert context.issue.reported_by.user_id is None


class TestRenderMarkdown:
    def test_error_event_details(self, now, app, make_error_event):
        stack = "\n".join(f"    at frame{i} (app.js:{i}:1)" for i in range(40))
        event = make_error_event(
            stack=stack,
            component_stack="in OrderView\nin App",
            source_file="app.js",
            line_number=12,
        )

        markdown = render_issue_context_markdown(_issue(now), [event], app, generated_at=now)

        assert f"Generated: {now.isoformat()}" in markdown
        assert f"- **Last Seen:** {now.isoformat()}" in markdown
        assert "**Error Type:** TypeError" in markdown
        assert f"frame{CONTEXT_STACK_MAX_LINES - 1} " in markdown
        assert f"frame{CONTEXT_STACK_MAX_LINES} " not in markdown
        assert "**Component Stack (React):**\n```\nin OrderView\nin App\n```" in markdown
        assert "**Source:** app.js:12:?" in markdown
        assert "- **User Role:** user" in markdown
        assert markdown.endswith("- Recent changes to affected files\n")

    def test_recent_events_capped(self, now, app, make_error_event):
        events = [make_error_event() for _ in range(MARKDOWN_MAX_EVENTS + 3)]

        markdown = render_issue_context_markdown(_issue(now), events, app)

        assert f"### Event {MARKDOWN_MAX_EVENTS} (frontend_error)" in markdown
        assert f"### Event {MARKDOWN_MAX_EVENTS + 1} " not in markdown

    def test_metrics_only_for_repeated_errors(self, now, app, make_feedback_event):
        single = _issue(now, counts=IssueCounts())
        feedback = _issue(now, issue_type=IssueType.FEEDBACK)

        assert "## Metrics" not in render_issue_context_markdown(single, [], app)
        feedback_markdown = render_issue_context_markdown(feedback, [make_feedback_event()], app)
        assert "## Metrics" not in feedback_markdown
        assert "## Pattern Observations" not in feedback_markdown
        assert (
            "### Feedback 1\n**Category:** bug\n**Description:** The export button does nothing"
            in feedback_markdown
        )
