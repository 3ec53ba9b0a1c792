"""集成测试共享 fixture

走真实 lifespan：StoreGroup、TriageService 都由 create_app 装配。
"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path):
    """集成测试用 FastAPI app（echo 模式）"""
    os.environ["BRITEPULSE_DB_PATH"] = str(tmp_path / "sqlite" / "britepulse.db")
    os.environ["BRITEPULSE_ATTACHMENTS_DIR"] = str(tmp_path / "attachments")
    os.environ["BRITEPULSE_LLM_MODE"] = "echo"
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from britepulse.gateway.main import create_app

    app = create_app()

    async with app.router.lifespan_context(app):
        yield app

    os.environ.pop("BRITEPULSE_DB_PATH", None)
    os.environ.pop("BRITEPULSE_ATTACHMENTS_DIR", None)
    os.environ.pop("BRITEPULSE_LLM_MODE", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
