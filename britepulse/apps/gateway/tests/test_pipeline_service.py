"""PipelineService 测试：后台 Triage 调度与附件解码"""

import base64
import binascii
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from britepulse.core.exceptions import AppNotFoundError
from britepulse.core.models import Environment
from britepulse.core.store import write_transaction
from britepulse.gateway.services.pipeline_service import (
    PipelineResult,
    PipelineService,
    RejectedEvent,
    decode_attachment_data,
)


def _raw_error(message="Cannot read properties of undefined (reading 'id')"):
    return {
        "event_type": "frontend_error",
        "route_or_url": "/orders/123",
        "user": {"user_id": "user-1"},
        "payload": {"error_type": "TypeError", "message": message},
    }


@pytest_asyncio.fixture
async def eager_app(store_group, make_app):
    app = make_app(
        policies={"ai_policy": {"eligible_severity_min": "P2", "eligible_recurrence_min": 1}}
    )
    async with write_transaction(store_group):
        await store_group.app_store.save_app(app)
    return app


class TestTriageScheduling:
    async def test_eligible_issue_scheduled(self, store_group, eager_app, now):
        scheduler = MagicMock()
        pipeline = PipelineService(store_group, triage_scheduler=scheduler)

        result = await pipeline.process_event(_raw_error(), eager_app, now=now)

        assert isinstance(result, PipelineResult)
        scheduler.assert_called_once_with(result.issue_id)

    async def test_below_threshold_not_scheduled(self, store_group, demo_app, now):
        scheduler = MagicMock()
        pipeline = PipelineService(store_group, triage_scheduler=scheduler)

        await pipeline.process_event(_raw_error(), demo_app, now=now)

        scheduler.assert_not_called()

    async def test_feedback_not_scheduled(self, store_group, eager_app, now):
        scheduler = MagicMock()
        pipeline = PipelineService(store_group, triage_scheduler=scheduler)

        await pipeline.process_event(
            {
                "event_type": "feedback",
                "route_or_url": "/reports",
                "payload": {"category": "bug", "description": "Export is broken"},
            },
            eager_app,
            now=now,
        )

        scheduler.assert_not_called()

    async def test_rejected_event_not_scheduled(self, store_group, eager_app, now):
        scheduler = MagicMock()
        pipeline = PipelineService(store_group, triage_scheduler=scheduler)

        result = await pipeline.process_event({"event_type": "nope"}, eager_app, index=3, now=now)

        assert isinstance(result, RejectedEvent)
        assert result.index == 3
        assert result.code == "INVALID_EVENT"
        scheduler.assert_not_called()


class TestProcessEventResult:
    """处理结果直接携带事件和 Issue"""

    async def test_result_carries_event_and_issue(self, store_group, demo_app, now):
        pipeline = PipelineService(store_group)

        first = await pipeline.process_event(_raw_error(), demo_app, now=now)
        second = await pipeline.process_event(_raw_error(), demo_app, now=now)

        assert isinstance(second, PipelineResult)
        assert first.is_new_issue is True
        assert second.is_new_issue is False
        assert second.event.event_id == second.event_id
        assert second.event.fingerprint == second.fingerprint == first.fingerprint
        assert second.issue.issue_id == second.issue_id == first.issue_id
        assert second.issue.counts.occurrences_total == 2
        assert second.issue.severity == first.issue.severity

        stored = await store_group.issue_store.get_issue(second.issue_id)
        assert stored.counts.occurrences_total == second.issue.counts.occurrences_total

    async def test_event_reflects_stored_attachments(self, store_group, demo_app, now):
        raw = {
            "event_type": "feedback",
            "route_or_url": "/reports",
            "payload": {"category": "bug", "description": "Export is broken"},
            "attachments": [
                {
                    "filename": "notes.txt",
                    "content_type": "text/plain",
                    "data": base64.b64encode(b"steps to reproduce").decode(),
                    "user_opted_in": True,
                }
            ],
        }

        result = await PipelineService(store_group).process_event(raw, demo_app, now=now)

        assert len(result.attachment_ids) == 1
        assert result.event.attachment_refs == result.attachment_ids

    async def test_dump_keeps_ids_only(self, store_group, demo_app, now):
        result = await PipelineService(store_group).process_event(_raw_error(), demo_app, now=now)

        dumped = result.model_dump(mode="json")
        assert "event" not in dumped
        assert "issue" not in dumped
        assert dumped["event_id"] == result.event.event_id


class TestProcessBatch:
    async def test_unknown_app(self, store_group):
        with pytest.raises(AppNotFoundError):
            await PipelineService(store_group).process_batch("ghost", Environment.PROD, [])

    async def test_indexes_preserved(self, store_group, demo_app):
        result = await PipelineService(store_group).process_batch(
            "demo-app",
            Environment.PROD,
            [_raw_error(), {"event_type": "feedback"}, _raw_error("other failure")],
        )

        assert [r.index for r in result.accepted] == [0, 2]
        assert [r.index for r in result.rejected] == [1]


class TestDecodeAttachmentData:
    def test_plain_base64(self):
        assert decode_attachment_data(base64.b64encode(b"png-bytes").decode()) == b"png-bytes"

    def test_data_url(self):
        data = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()
        assert decode_attachment_data(data) == b"png-bytes"

    def test_invalid(self):
        with pytest.raises(binascii.Error):
            decode_attachment_data("not base64!!")
