"""apps/gateway 测试配置 -- FastAPI app + httpx AsyncClient

ASGITransport 不触发 lifespan，StoreGroup 与 TriageService 手动挂到 app.state。
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from britepulse.core.store import StoreGroup
from britepulse.gateway.services.triage_service import TriageService
from britepulse.provider import EchoTriageAdapter, TriageAnalyzer
from httpx import ASGITransport, AsyncClient


@pytest.fixture
def gateway_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """测试环境变量"""
    monkeypatch.setenv("BRITEPULSE_DB_PATH", str(tmp_path / "sqlite" / "test.db"))
    monkeypatch.setenv("BRITEPULSE_ATTACHMENTS_DIR", str(tmp_path / "attachments"))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    monkeypatch.delenv("BRITEPULSE_LLM_MODE", raising=False)
    return tmp_path


@pytest.fixture
def triage_service(store_group: StoreGroup) -> TriageService:
    """Echo 模式的 TriageService"""
    return TriageService(store_group, TriageAnalyzer(EchoTriageAdapter(), model_alias="echo"))


@pytest_asyncio.fixture
async def app(gateway_env: Path, store_group: StoreGroup, triage_service: TriageService):
    """创建测试用 FastAPI app 实例"""
    from britepulse.gateway.main import create_app

    application = create_app()
    application.state.store_group = store_group
    application.state.triage_service = triage_service
    application.state.litellm_client = None
    yield application

    await triage_service.drain()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def registered_app(client: AsyncClient) -> dict[str, Any]:
    """通过 API 注册的 demo-app"""
    resp = await client.post(
        "/api/apps",
        json={
            "app_id": "demo-app",
            "name": "Demo App",
            "owners": {"po_emails": ["po@example.com"]},
        },
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def error_event() -> Callable[..., dict[str, Any]]:
    """SDK 格式的错误事件构造器"""

    def _make(
        message: str = "Cannot read properties of undefined (reading 'id')",
        route: str = "/orders/123",
        user_id: str = "user-1",
        event_type: str = "frontend_error",
        **payload_extra: Any,
    ) -> dict[str, Any]:
        return {
            "event_type": event_type,
            "route_or_url": route,
            "session_id": f"session-{user_id}",
            "version": "1.2.3",
            "user": {"user_id": user_id},
            "payload": {
                "error_type": "TypeError",
                "message": message,
                "stack": "TypeError: boom\n    at loadOrder (app.js:10:5)",
                **payload_extra,
            },
        }

    return _make


@pytest.fixture
def feedback_event() -> Callable[..., dict[str, Any]]:
    """SDK 格式的反馈事件构造器"""

    def _make(description: str = "The export button does nothing", **extra: Any) -> dict[str, Any]:
        return {
            "event_type": "feedback",
            "route_or_url": "/reports",
            "user": {"user_id": "user-1"},
            "payload": {"category": "bug", "description": description},
            **extra,
        }

    return _make
