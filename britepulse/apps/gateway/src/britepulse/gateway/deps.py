"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与服务实例

StoreGroup 和 TriageService 通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from britepulse.core.store import StoreGroup
from fastapi import Depends, Request

from .services.issue_service import IssueService
from .services.pipeline_service import PipelineService
from .services.triage_service import TriageService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_triage_service(request: Request) -> TriageService:
    """从 app.state 获取 TriageService 实例"""
    return request.app.state.triage_service


def get_issue_service(store_group: StoreGroup = Depends(get_store_group)) -> IssueService:
    return IssueService(store_group)


def get_pipeline_service(
    store_group: StoreGroup = Depends(get_store_group),
    triage_service: TriageService = Depends(get_triage_service),
) -> PipelineService:
    return PipelineService(store_group, triage_scheduler=triage_service.schedule_background_triage)
