"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、attachments_dir、磁盘空间；
         profile=llm 时额外探测 LiteLLM Proxy。
"""

import shutil

import aiosqlite
import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="core（默认）仅核心检查；llm 额外探测 LiteLLM Proxy",
    ),
):
    """Readiness 检查

    检查项：
    1. sqlite: 数据库连通性
    2. attachments_dir: 附件目录可访问性
    3. disk_space_mb: 附件目录所在磁盘剩余空间
    4. litellm_proxy: 仅 profile=llm 且为 litellm 模式时探测
    """
    effective_profile = profile or "core"
    store_group = request.app.state.store_group

    checks: dict[str, str | int] = {}
    all_ok = True

    try:
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except (aiosqlite.Error, ValueError) as e:
        checks["sqlite"] = f"error: {e}"
        all_ok = False

    attachments_dir = store_group.attachments_dir
    if attachments_dir.is_dir():
        checks["attachments_dir"] = "ok"
        checks["disk_space_mb"] = shutil.disk_usage(attachments_dir).free // (1024 * 1024)
    else:
        checks["attachments_dir"] = "error: directory does not exist"
        checks["disk_space_mb"] = 0
        all_ok = False

    litellm_client = getattr(request.app.state, "litellm_client", None)
    if effective_profile == "llm" and litellm_client is not None:
        if await litellm_client.health_check():
            checks["litellm_proxy"] = "ok"
        else:
            log.warning("litellm_proxy_unreachable")
            checks["litellm_proxy"] = "unreachable"
            all_ok = False
    else:
        checks["litellm_proxy"] = "skipped"

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "profile": effective_profile,
            "checks": checks,
        },
    )
