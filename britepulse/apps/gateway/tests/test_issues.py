"""Issue API 测试

测试内容：
1. 列表筛选、详情、关联事件、相关 Issue
2. set-status 合法 / 非法流转、关闭时间、重新打开冲突
3. set-severity / assign
4. merge
5. 手动 triage（force 绕过资格判定）
"""

from typing import Any

import pytest
import pytest_asyncio


async def _create_issue(client, event: dict[str, Any], environment: str = "prod") -> str:
    resp = await client.post(
        "/api/events",
        json={"app_id": "demo-app", "environment": environment, "events": [event]},
    )
    assert resp.status_code == 201
    return resp.json()["issue_ids"][0]


@pytest_asyncio.fixture
async def issue_id(client, registered_app, error_event) -> str:
    return await _create_issue(client, error_event())


class TestQueries:
    async def test_get_issue(self, client, issue_id):
        resp = await client.get(f"/api/issues/{issue_id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["issue_id"] == issue_id
        assert body["status"] == "new"
        assert body["severity"] == "P2"
        assert body["routing"]["assigned_to"] == "po@example.com"
        assert body["title"] == "TypeError: Cannot read properties of undefined (reading 'id')"

    async def test_get_missing(self, client):
        resp = await client.get("/api/issues/01JMISSINGISSUE00000000000")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ISSUE_NOT_FOUND"

    async def test_list_filters(self, client, registered_app, error_event, feedback_event):
        error_id = await _create_issue(client, error_event())
        feedback_id = await _create_issue(client, feedback_event())
        stage_id = await _create_issue(client, error_event(), environment="stage")

        all_issues = (await client.get("/api/issues", params={"app_id": "demo-app"})).json()
        assert {i["issue_id"] for i in all_issues["issues"]} == {error_id, feedback_id, stage_id}

        prod = (await client.get("/api/issues", params={"environment": "prod"})).json()
        assert {i["issue_id"] for i in prod["issues"]} == {error_id, feedback_id}

        low = (await client.get("/api/issues", params={"severity": "P3"})).json()
        assert [i["issue_id"] for i in low["issues"]] == [stage_id]

        await client.post(
            f"/api/issues/{error_id}/actions/set-status", json={"status": "triaged"}
        )
        statuses = (
            await client.get("/api/issues", params=[("status", "triaged"), ("status", "blocked")])
        ).json()
        assert [i["issue_id"] for i in statuses["issues"]] == [error_id]

    async def test_list_limit_validated(self, client):
        resp = await client.get("/api/issues", params={"limit": 500})
        assert resp.status_code == 422

    async def test_issue_events(self, client, registered_app, error_event):
        issue_id = await _create_issue(client, error_event(user_id="u1"))
        await _create_issue(client, error_event(user_id="u2"))

        resp = await client.get(f"/api/issues/{issue_id}/events")

        body = resp.json()
        assert body["returned"] == 2
        assert {e["user"]["user_id"] for e in body["events"]} == {"u1", "u2"}

    async def test_issue_events_missing_issue(self, client):
        resp = await client.get("/api/issues/01JMISSINGISSUE00000000000/events")
        assert resp.status_code == 404

    async def test_related(self, client, registered_app, error_event):
        issue_id = await _create_issue(client, error_event(route="/orders/1"))
        similar_id = await _create_issue(client, error_event(route="/checkout"))

        resp = await client.get(f"/api/issues/{issue_id}/related")

        related = resp.json()["related"]
        assert [r["issue_id"] for r in related] == [similar_id]
        assert related[0]["similarity"] == pytest.approx(0.9)


class TestSetStatus:
    async def test_valid_transition(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "triaged"}
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "triaged"

    async def test_invalid_transition(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "blocked"}
        )

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "INVALID_STATUS_TRANSITION"
        assert "Cannot transition from new to blocked" in error["message"]

    async def test_resolve_and_reopen(self, client, issue_id):
        resolved = (
            await client.post(
                f"/api/issues/{issue_id}/actions/set-status",
                json={"status": "resolved", "resolution_note": "Fixed in 1.2.4"},
            )
        ).json()
        assert resolved["timestamps"]["resolved_at"] is not None
        assert resolved["resolution_note"] == "Fixed in 1.2.4"

        reopened = (
            await client.post(
                f"/api/issues/{issue_id}/actions/set-status", json={"status": "in_progress"}
            )
        ).json()
        assert reopened["status"] == "in_progress"
        assert reopened["timestamps"]["resolved_at"] is None

    async def test_wont_fix_sets_timestamp(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "wont_fix"}
        )
        assert resp.json()["timestamps"]["wont_fix_at"] is not None

    async def test_reopen_conflict(self, client, registered_app, error_event, issue_id):
        """关闭后同指纹已建新 Issue，旧 Issue 不能重新打开"""
        await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "resolved"}
        )
        new_id = await _create_issue(client, error_event())
        assert new_id != issue_id

        resp = await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "triaged"}
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ISSUE_CONFLICT"

    async def test_unknown_status(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "done"}
        )
        assert resp.status_code == 422


class TestSeverityAndAssign:
    async def test_set_severity(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/set-severity", json={"severity": "P0"}
        )
        assert resp.status_code == 200
        assert resp.json()["severity"] == "P0"

    async def test_assign(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/assign", json={"assigned_to": "dev@example.com"}
        )
        assert resp.json()["routing"]["assigned_to"] == "dev@example.com"

    async def test_assign_missing_issue(self, client):
        resp = await client.post(
            "/api/issues/01JMISSINGISSUE00000000000/actions/assign",
            json={"assigned_to": "dev@example.com"},
        )
        assert resp.status_code == 404


class TestMerge:
    async def test_merge(self, client, registered_app, error_event):
        target = await _create_issue(client, error_event(message="first failure"))
        source = await _create_issue(client, error_event(message="second failure"))

        resp = await client.post(
            f"/api/issues/{target}/actions/merge", json={"source_issue_ids": [source]}
        )

        assert resp.status_code == 200
        assert resp.json()["counts"]["occurrences_total"] == 2
        merged_source = (await client.get(f"/api/issues/{source}")).json()
        assert merged_source["status"] == "resolved"
        assert merged_source["merged_into"] == target

    async def test_merged_source_cannot_reopen(self, client, registered_app, error_event):
        """被合并的 Issue 不能重新打开，否则同指纹会出现两个未关闭 Issue"""
        target = await _create_issue(client, error_event(message="first failure"))
        source = await _create_issue(client, error_event(message="second failure"))
        await client.post(
            f"/api/issues/{target}/actions/merge", json={"source_issue_ids": [source]}
        )

        resp = await client.post(
            f"/api/issues/{source}/actions/set-status", json={"status": "triaged"}
        )

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "INVALID_STATUS_TRANSITION"
        assert target in error["message"]
        source_issue = (await client.get(f"/api/issues/{source}")).json()
        assert source_issue["status"] == "resolved"

    async def test_merge_into_itself(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/merge", json={"source_issue_ids": [issue_id]}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "MERGE_FAILED"

    async def test_merge_missing_source(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/merge",
            json={"source_issue_ids": ["01JMISSINGISSUE00000000000"]},
        )
        assert resp.status_code == 404

    async def test_merge_requires_sources(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/merge", json={"source_issue_ids": []}
        )
        assert resp.status_code == 422


class TestTriageAction:
    async def test_not_eligible(self, client, issue_id):
        resp = await client.post(f"/api/issues/{issue_id}/actions/triage")

        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is False
        assert body["skipped_reason"] == "Severity P2 below threshold P1"

    async def test_force(self, client, issue_id):
        resp = await client.post(
            f"/api/issues/{issue_id}/actions/triage", json={"force": True}
        )

        body = resp.json()
        assert body["success"] is True
        assert body["analysis"]["model_name"] == "echo"
        assert body["analysis"]["severity"] == "P2"

        issue = (await client.get(f"/api/issues/{issue_id}")).json()
        assert issue["ai_analysis"]["analysis_id"] == body["analysis"]["analysis_id"]

    async def test_missing_issue(self, client):
        resp = await client.post(
            "/api/issues/01JMISSINGISSUE00000000000/actions/triage", json={"force": True}
        )
        assert resp.status_code == 404
