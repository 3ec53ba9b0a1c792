"""Severity Classifier 单元测试"""

import pytest
from britepulse.core.models import (
    BackendErrorPayload,
    Environment,
    EventType,
    FeedbackPayload,
    FrontendErrorPayload,
    Severity,
)
from britepulse.core.severity import infer_severity


def _backend(**overrides) -> BackendErrorPayload:
    data = {"error_type": "ValueError", "message": "bad input"}
    data.update(overrides)
    return BackendErrorPayload(**data)


class TestBackendErrors:
    @pytest.mark.parametrize(
        "payload",
        [
            _backend(error_type="FatalDatabaseError"),
            _backend(error_type="CRITICAL_TIMEOUT"),
            _backend(http_status=500),
            _backend(http_status=503),
        ],
    )
    def test_critical_in_prod_is_p1(self, payload):
        assert infer_severity(EventType.BACKEND_ERROR, Environment.PROD, payload) == Severity.P1

    def test_plain_prod_error_is_p2(self):
        payload = _backend(http_status=404)
        assert infer_severity(EventType.BACKEND_ERROR, Environment.PROD, payload) == Severity.P2

    def test_critical_outside_prod_is_p2(self):
        payload = _backend(http_status=500)
        assert infer_severity(EventType.BACKEND_ERROR, Environment.STAGE, payload) == Severity.P2

    def test_missing_error_type(self):
        payload = _backend(error_type=None)
        assert infer_severity(EventType.BACKEND_ERROR, Environment.PROD, payload) == Severity.P2


class TestFrontendErrors:
    @pytest.mark.parametrize(
        ("environment", "expected"),
        [
            (Environment.PROD, Severity.P2),
            (Environment.STAGE, Severity.P3),
            (Environment.DEV, Severity.P3),
        ],
    )
    def test_by_environment(self, environment, expected):
        payload = FrontendErrorPayload(error_type="FatalError", message="boom")
        assert infer_severity(EventType.FRONTEND_ERROR, environment, payload) == expected


class TestFeedback:
    @pytest.mark.parametrize(
        ("category", "environment", "expected"),
        [
            ("bug", Environment.PROD, Severity.P2),
            ("bug", Environment.DEV, Severity.P3),
            ("feature", Environment.PROD, Severity.P3),
            ("feedback", Environment.PROD, Severity.P3),
        ],
    )
    def test_by_category(self, category, environment, expected):
        payload = FeedbackPayload(category=category, description="something")
        assert infer_severity(EventType.FEEDBACK, environment, payload) == expected

    def test_environment_as_string(self):
        payload = FeedbackPayload(category="bug", description="something")
        assert infer_severity(EventType.FEEDBACK, "prod", payload) == Severity.P2
