"""全局 pytest 配置 -- 临时 SQLite Store + 应用/事件构造 fixture"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from britepulse.core.fingerprint import extract_fingerprint_input, generate_fingerprint
from britepulse.core.models import App, Environment, Event, EventType, EventUser
from britepulse.core.store import StoreGroup, create_store_group, write_transaction
from ulid import ULID

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """固定的当前时间，避免测试受墙钟影响"""
    return FIXED_NOW


@pytest_asyncio.fixture
async def store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(
        str(tmp_path / "sqlite" / "test.db"),
        tmp_path / "attachments",
    )
    yield group
    await group.conn.close()


@pytest.fixture
def make_app(now: datetime) -> Callable[..., App]:
    """App 构造器"""

    def _make(app_id: str = "demo-app", **overrides: Any) -> App:
        data: dict[str, Any] = {
            "app_id": app_id,
            "name": "Demo App",
            "owners": {"po_emails": ["po@example.com"]},
            "created_at": now,
            "updated_at": now,
        }
        data.update(overrides)
        return App.model_validate(data)

    return _make


@pytest_asyncio.fixture
async def demo_app(store_group: StoreGroup, make_app: Callable[..., App]) -> App:
    """已注册的应用"""
    app = make_app()
    async with write_transaction(store_group):
        await store_group.app_store.save_app(app)
    return app


@pytest.fixture
def make_error_event(now: datetime) -> Callable[..., Event]:
    """错误事件构造器，自动计算指纹"""

    def _make(
        message: str = "Cannot read properties of undefined (reading 'id')",
        error_type: str = "TypeError",
        stack: str | None = "TypeError: boom\n    at loadOrder (app.js:10:5)",
        route: str = "/orders/123",
        user_id: str = "user-1",
        event_type: EventType = EventType.FRONTEND_ERROR,
        environment: Environment = Environment.PROD,
        app_id: str = "demo-app",
        **payload_extra: Any,
    ) -> Event:
        event = Event(
            event_id=str(ULID()),
            app_id=app_id,
            environment=environment,
            event_type=event_type,
            timestamp=now,
            session_id=f"session-{user_id}",
            route_or_url=route,
            version="1.2.3",
            user=EventUser(user_id=user_id),
            payload={"error_type": error_type, "message": message, "stack": stack, **payload_extra},
        )
        fingerprint = generate_fingerprint(extract_fingerprint_input(event))
        return event.model_copy(update={"fingerprint": fingerprint})

    return _make


@pytest.fixture
def make_feedback_event(now: datetime) -> Callable[..., Event]:
    """反馈事件构造器（无指纹）"""

    def _make(
        description: str = "The export button does nothing",
        category: str = "bug",
        route: str = "/reports",
        user_id: str = "user-1",
        environment: Environment = Environment.PROD,
        app_id: str = "demo-app",
    ) -> Event:
        return Event(
            event_id=str(ULID()),
            app_id=app_id,
            environment=environment,
            event_type=EventType.FEEDBACK,
            timestamp=now,
            session_id=f"session-{user_id}",
            route_or_url=route,
            user=EventUser(user_id=user_id),
            payload={"category": category, "description": description},
        )

    return _make
