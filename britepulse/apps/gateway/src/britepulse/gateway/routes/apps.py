"""应用注册路由

POST /api/apps: 注册或更新应用配置（按 app_id 覆盖，保留 created_at）。
GET /api/apps/{app_id}: 查询应用配置。
"""

from datetime import UTC, datetime

import structlog
from britepulse.core.exceptions import AppNotFoundError
from britepulse.core.models import App, AppOwners, AppPolicies, AppSchedules
from britepulse.core.store import write_transaction
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_store_group

log = structlog.get_logger()

router = APIRouter()


class AppRequest(BaseModel):
    """应用注册请求体"""

    app_id: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_.-]+$", description="应用标识")
    name: str = Field(min_length=1, description="应用名称")
    owners: AppOwners = Field(default_factory=AppOwners)
    policies: AppPolicies = Field(default_factory=AppPolicies)
    schedules: AppSchedules = Field(default_factory=AppSchedules)


@router.post("/api/apps")
async def register_app(body: AppRequest, store_group=Depends(get_store_group)):
    """注册应用：新建返回 201，覆盖已有配置返回 200"""
    now = datetime.now(UTC)
    existing = await store_group.app_store.get_app(body.app_id)
    app = App(
        **body.model_dump(),
        created_at=existing.created_at if existing else now,
        updated_at=now,
    )
    async with write_transaction(store_group):
        await store_group.app_store.save_app(app)

    log.info("app_registered", app_id=app.app_id, created=existing is None)
    return JSONResponse(
        status_code=200 if existing else 201,
        content=app.model_dump(mode="json"),
    )


@router.get("/api/apps/{app_id}")
async def get_app(app_id: str, store_group=Depends(get_store_group)):
    app = await store_group.app_store.get_app(app_id)
    if app is None:
        raise AppNotFoundError(app_id)
    return app.model_dump(mode="json")
