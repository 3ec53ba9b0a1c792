"""事件上报路由

POST /api/events: 批量上报（1-100 条），逐条独立处理。
GET /api/events/{event_id}: 查询单条事件（调试用）。
"""

from typing import Any

from britepulse.core.config import INGEST_BATCH_MAX_EVENTS
from britepulse.core.models import Environment
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_pipeline_service, get_store_group
from ..errors import error_response
from ..services.pipeline_service import PipelineResult, PipelineService, RejectedEvent

router = APIRouter()


class IngestRequest(BaseModel):
    """批量上报请求体，单条事件在 service 内校验"""

    app_id: str = Field(min_length=1, description="应用标识")
    environment: Environment = Field(default=Environment.PROD, description="部署环境")
    events: list[dict[str, Any]] = Field(
        min_length=1,
        max_length=INGEST_BATCH_MAX_EVENTS,
        description="事件列表",
    )


class IngestResponse(BaseModel):
    """批量上报响应"""

    accepted: int
    rejected: int
    event_ids: list[str]
    issue_ids: list[str]
    results: list[PipelineResult]
    errors: list[RejectedEvent]


@router.post("/api/events", response_model=IngestResponse)
async def ingest_events(
    body: IngestRequest,
    service: PipelineService = Depends(get_pipeline_service),
):
    """至少一条被接受返回 201，全部被拒绝返回 400"""
    result = await service.process_batch(body.app_id, body.environment, body.events)
    response = IngestResponse(
        accepted=len(result.accepted),
        rejected=len(result.rejected),
        event_ids=[r.event_id for r in result.accepted],
        issue_ids=list(dict.fromkeys(r.issue_id for r in result.accepted)),
        results=result.accepted,
        errors=result.rejected,
    )
    return JSONResponse(
        status_code=201 if result.accepted else 400,
        content=response.model_dump(mode="json"),
    )


@router.get("/api/events/{event_id}")
async def get_event(event_id: str, store_group=Depends(get_store_group)):
    event = await store_group.event_store.get_event(event_id)
    if event is None:
        return error_response(404, "EVENT_NOT_FOUND", f"Event with id {event_id} does not exist")
    attachments = await store_group.attachment_store.list_attachments_for_event(event_id)
    return {
        "event": event.model_dump(mode="json"),
        "attachments": [
            a.model_dump(mode="json", exclude={"storage_path"}) for a in attachments
        ],
    }
