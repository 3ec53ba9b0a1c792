"""Provider 包测试 fixtures"""

import pytest
from britepulse.provider.models import TriageInput


@pytest.fixture
def sample_messages() -> list[dict[str, str]]:
    """标准 messages 格式测试数据"""
    return [{"role": "user", "content": "Hello, world!"}]


@pytest.fixture
def triage_input() -> TriageInput:
    """已脱敏的证据包"""
    return TriageInput(
        issue_id="01JISSUE000000000000000001",
        issue_title="TypeError: Cannot read properties of undefined",
        issue_description="Route: /orders/123",
        issue_type="bug",
        current_severity="P1",
        app_name="Demo App",
        environment="prod",
        occurrences_total=42,
        occurrences_24h=12,
        unique_users_24h_est=5,
        trend_direction="increasing",
        sanitized_stack_traces=["TypeError: boom\n    at loadOrder (app.js:10:5)"],
        affected_routes=["/orders/123"],
        affected_versions=["1.2.3"],
    )
