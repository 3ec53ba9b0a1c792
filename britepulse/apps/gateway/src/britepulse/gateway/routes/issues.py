"""Issue 路由

GET  /api/issues                         列表（app_id / environment / status / severity 筛选）
GET  /api/issues/{issue_id}              详情
GET  /api/issues/{issue_id}/events       关联事件（最新在前）
GET  /api/issues/{issue_id}/related      相似 Issue 提示
GET  /api/issues/{issue_id}/context      给 AI 编码助手的上下文文件（markdown / json）
POST /api/issues/{issue_id}/actions/...  set-status / set-severity / assign / merge / triage
"""

from typing import Literal

from britepulse.core.models import Environment, IssueStatus, Severity
from britepulse.provider.context import build_issue_context, render_issue_context_markdown
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import PlainTextResponse

from ..deps import get_issue_service, get_triage_service
from ..services.issue_service import IssueService
from ..services.triage_service import TriageService

router = APIRouter()


class SetStatusRequest(BaseModel):
    status: IssueStatus
    resolution_note: str | None = None


class SetSeverityRequest(BaseModel):
    severity: Severity


class AssignRequest(BaseModel):
    assigned_to: str = Field(min_length=1)


class MergeRequest(BaseModel):
    source_issue_ids: list[str] = Field(min_length=1)


class TriageRequest(BaseModel):
    force: bool = Field(default=False, description="绕过资格判定")


@router.get("/api/issues")
async def list_issues(
    app_id: str | None = Query(default=None),
    environment: Environment | None = Query(default=None),
    status: list[IssueStatus] | None = Query(default=None, description="可重复传入"),
    severity: Severity | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: IssueService = Depends(get_issue_service),
):
    issues = await service.list_issues(
        app_id=app_id,
        environment=environment.value if environment else None,
        statuses=status,
        severity=severity,
        limit=limit,
        offset=offset,
    )
    return {"issues": [i.model_dump(mode="json") for i in issues]}


@router.get("/api/issues/{issue_id}")
async def get_issue(issue_id: str, service: IssueService = Depends(get_issue_service)):
    issue = await service.get_issue(issue_id)
    return issue.model_dump(mode="json")


@router.get("/api/issues/{issue_id}/events")
async def list_issue_events(
    issue_id: str,
    limit: int = Query(default=50, ge=1, le=100),
    service: IssueService = Depends(get_issue_service),
):
    events = await service.list_events(issue_id, limit=limit)
    return {"events": [e.model_dump(mode="json") for e in events], "returned": len(events)}


@router.get("/api/issues/{issue_id}/related")
async def list_related_issues(
    issue_id: str,
    limit: int = Query(default=5, ge=1, le=20),
    threshold: float = Query(default=0.5, ge=0.0, le=1.0),
    service: IssueService = Depends(get_issue_service),
):
    related = await service.related(issue_id, limit=limit, threshold=threshold)
    return {"related": [r.model_dump(mode="json") for r in related]}


@router.get("/api/issues/{issue_id}/context")
async def get_issue_context(
    issue_id: str,
    fmt: Literal["markdown", "json"] = Query(default="markdown", alias="format"),
    service: IssueService = Depends(get_issue_service),
):
    """Markdown 以附件形式下载；json 返回结构化上下文"""
    issue, events, app = await service.load_context_sources(issue_id)
    if fmt == "json":
        context = build_issue_context(issue, events, app)
        return context.model_dump(mode="json", exclude_none=True)

    return PlainTextResponse(
        render_issue_context_markdown(issue, events, app),
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="issue-{issue_id}-context.md"'},
    )


@router.post("/api/issues/{issue_id}/actions/set-status")
async def set_status(
    issue_id: str,
    body: SetStatusRequest,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.set_status(issue_id, body.status, body.resolution_note)
    return issue.model_dump(mode="json")


@router.post("/api/issues/{issue_id}/actions/set-severity")
async def set_severity(
    issue_id: str,
    body: SetSeverityRequest,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.set_severity(issue_id, body.severity)
    return issue.model_dump(mode="json")


@router.post("/api/issues/{issue_id}/actions/assign")
async def assign(
    issue_id: str,
    body: AssignRequest,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.assign(issue_id, body.assigned_to)
    return issue.model_dump(mode="json")


@router.post("/api/issues/{issue_id}/actions/merge")
async def merge(
    issue_id: str,
    body: MergeRequest,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.merge(issue_id, body.source_issue_ids)
    return issue.model_dump(mode="json")


@router.post("/api/issues/{issue_id}/actions/triage")
async def triage(
    issue_id: str,
    body: TriageRequest | None = None,
    service: TriageService = Depends(get_triage_service),
):
    """手动触发 Triage；force=true 绕过资格判定"""
    outcome = await service.run_triage(issue_id, force=body.force if body else False)
    return outcome.model_dump(mode="json")
