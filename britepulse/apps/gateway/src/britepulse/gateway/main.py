"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + AI Triage 协作方初始化 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from britepulse.core.config import get_attachments_dir, get_db_path
from britepulse.core.store import create_store_group
from britepulse.provider import (
    EchoTriageAdapter,
    LiteLLMClient,
    TriageAnalyzer,
    load_provider_config,
)
from fastapi import FastAPI

from .errors import register_error_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import apps, attachments, briefs, events, health, issues
from .services.triage_service import TriageService

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """启动时初始化 DB 和 Triage 组件，关闭时等待后台 Triage 并关闭连接"""
    store_group = await create_store_group(get_db_path(), get_attachments_dir())
    app.state.store_group = store_group

    provider_config = load_provider_config()
    app.state.provider_config = provider_config

    if provider_config.llm_mode == "litellm":
        litellm_client = LiteLLMClient(
            proxy_base_url=provider_config.proxy_base_url,
            proxy_api_key=provider_config.proxy_api_key.get_secret_value(),
            timeout_s=provider_config.timeout_s,
        )
        app.state.litellm_client = litellm_client
        analyzer = TriageAnalyzer(litellm_client, model_alias=provider_config.triage_model)
        log.info(
            "triage_analyzer_initialized",
            mode="litellm",
            proxy_url=provider_config.proxy_base_url,
            model_alias=provider_config.triage_model,
        )
    else:
        app.state.litellm_client = None
        analyzer = TriageAnalyzer(EchoTriageAdapter(), model_alias="echo")
        log.info("triage_analyzer_initialized", mode="echo")

    triage_service = TriageService(store_group, analyzer)
    app.state.triage_service = triage_service

    yield

    await triage_service.drain()
    await store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="BritePulse Gateway",
        version="0.1.0",
        description="BritePulse 事件上报与 Issue 聚合 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    register_error_handlers(app)

    setup_logging()
    setup_logfire(app)

    app.include_router(apps.router, tags=["apps"])
    app.include_router(events.router, tags=["events"])
    app.include_router(issues.router, tags=["issues"])
    app.include_router(attachments.router, tags=["attachments"])
    app.include_router(briefs.router, tags=["briefs"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
