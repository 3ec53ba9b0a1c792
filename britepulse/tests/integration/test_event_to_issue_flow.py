"""端到端流程：注册应用 -> 上报 -> 去重聚合 -> 后台 Triage -> 日报预览 -> 合并"""

APP = {
    "app_id": "shop-web",
    "name": "Shop Web",
    "owners": {"po_emails": ["po@shop.example"], "engineering_owner_group": "team-checkout"},
    "policies": {
        "redaction_profile": "standard",
        "ai_policy": {"eligible_severity_min": "P1", "eligible_recurrence_min": 3},
    },
}


def _checkout_failure(user_id: str, order_id: int) -> dict:
    return {
        "event_type": "backend_error",
        "route_or_url": f"/api/orders/{order_id}/checkout",
        "version": "2.4.0",
        "user": {"user_id": user_id},
        "payload": {
            "error_type": "PaymentGatewayError",
            "message": f"Charge failed for order {order_id} (card ending 4242)",
            "http_status": 502,
            "stack": "PaymentGatewayError: declined\n    at charge (payments.py:88)",
        },
    }


async def _ingest(client, events):
    resp = await client.post(
        "/api/events",
        json={"app_id": "shop-web", "environment": "prod", "events": events},
    )
    assert resp.status_code == 201
    return resp.json()


class TestEventToIssueFlow:
    async def test_full_flow(self, client, integration_app):
        assert (await client.post("/api/apps", json=APP)).status_code == 201

        # 1. 两次上报，订单号不同但归入同一 Issue；第二批越过 Triage 门槛
        first = await _ingest(client, [_checkout_failure("u1", 100201)])
        second = await _ingest(
            client,
            [_checkout_failure("u2", 100202), _checkout_failure("u3", 100203)],
        )
        issue_id = first["issue_ids"][0]
        assert second["issue_ids"] == [issue_id]

        await integration_app.state.triage_service.drain()

        issue = (await client.get(f"/api/issues/{issue_id}")).json()
        assert issue["severity"] == "P1"
        assert issue["issue_type"] == "bug"
        assert issue["counts"]["occurrences_total"] == 3
        assert issue["routing"]["assigned_to"] == "po@shop.example"
        assert issue["ai_analysis"]["model_name"] == "echo"

        # 2. 日报预览
        brief = (await client.get("/api/briefs/preview/shop-web")).json()
        assert [item["issue_id"] for item in brief["items"]] == [issue_id]
        assert "AI analyzed" in brief["items"][0]["reason"]

        # 3. 另一类错误，手动合并
        other = await _ingest(
            client,
            [
                {
                    "event_type": "frontend_error",
                    "route_or_url": "/checkout",
                    "user": {"user_id": "u4"},
                    "payload": {"error_type": "TypeError", "message": "total is undefined"},
                }
            ],
        )
        other_id = other["issue_ids"][0]
        assert other_id != issue_id

        merged = (
            await client.post(
                f"/api/issues/{issue_id}/actions/merge",
                json={"source_issue_ids": [other_id]},
            )
        ).json()
        assert merged["counts"]["occurrences_total"] == 4
        assert merged["counts"]["unique_users_24h_est"] == 4

        events = (await client.get(f"/api/issues/{issue_id}/events")).json()
        assert events["returned"] == 4

        # 4. 关闭后同类错误重新建 Issue
        await client.post(
            f"/api/issues/{issue_id}/actions/set-status", json={"status": "resolved"}
        )
        after = await _ingest(client, [_checkout_failure("u5", 100204)])
        assert after["issue_ids"] != [issue_id]
        assert after["results"][0]["is_new_issue"] is True

    async def test_readiness(self, client):
        resp = await client.get("/ready")

        assert resp.status_code == 200
        assert resp.json()["checks"]["litellm_proxy"] == "skipped"
