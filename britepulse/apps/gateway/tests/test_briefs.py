"""日报预览 API 测试"""


async def _ingest(client, events, environment="prod"):
    resp = await client.post(
        "/api/events",
        json={"app_id": "demo-app", "environment": environment, "events": events},
    )
    return resp.json()["issue_ids"][0]


class TestBriefPreview:
    async def test_ranked_by_score(self, client, registered_app, error_event):
        medium = await _ingest(client, [error_event(message="widget failed")])
        high = await _ingest(
            client,
            [error_event(message="db down", event_type="backend_error", http_status=500)],
        )

        resp = await client.get("/api/briefs/preview/demo-app")

        assert resp.status_code == 200
        body = resp.json()
        assert body["app_name"] == "Demo App"
        assert body["candidate_issues"] == 2
        assert [item["issue_id"] for item in body["items"]] == [high, medium]
        assert body["items"][0]["severity"] == "P1"
        assert body["items"][0]["reason"].startswith("severity P1")
        assert "new in last 24h" in body["items"][0]["reason"]
        assert body["summary"] == "2 issues: 1 high, 1 medium"
        assert body["meets_minimum"] is False

    async def test_min_severity(self, client, registered_app, error_event):
        await _ingest(client, [error_event(message="widget failed")])
        high = await _ingest(
            client,
            [error_event(message="db down", event_type="backend_error", http_status=500)],
        )

        body = (
            await client.get("/api/briefs/preview/demo-app", params={"min_severity": "P1"})
        ).json()

        assert [item["issue_id"] for item in body["items"]] == [high]

    async def test_environment_filter(self, client, registered_app, error_event):
        await _ingest(client, [error_event()])
        stage = await _ingest(client, [error_event()], environment="stage")

        body = (
            await client.get("/api/briefs/preview/demo-app", params={"environment": "stage"})
        ).json()

        assert body["candidate_issues"] == 1
        assert [item["issue_id"] for item in body["items"]] == [stage]

    async def test_recently_closed(self, client, registered_app, error_event):
        issue_id = await _ingest(client, [error_event()])
        await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "resolved"}
        )

        included = (await client.get("/api/briefs/preview/demo-app")).json()
        excluded = (
            await client.get(
                "/api/briefs/preview/demo-app", params={"include_recently_closed": "false"}
            )
        ).json()

        assert [item["issue_id"] for item in included["items"]] == [issue_id]
        assert included["items"][0]["status"] == "resolved"
        assert excluded["items"] == []

    async def test_max_items_from_app_schedule(self, client, error_event):
        await client.post(
            "/api/apps",
            json={
                "app_id": "demo-app",
                "name": "Demo App",
                "schedules": {"daily_brief_max_items": 2, "daily_brief_min_items": 1},
            },
        )
        for n in range(4):
            await _ingest(client, [error_event(message=f"failure number {n}")])

        body = (await client.get("/api/briefs/preview/demo-app")).json()

        assert body["candidate_issues"] == 4
        assert len(body["items"]) == 2
        assert body["meets_minimum"] is True

    async def test_unknown_app(self, client):
        resp = await client.get("/api/briefs/preview/ghost")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "APP_NOT_FOUND"
