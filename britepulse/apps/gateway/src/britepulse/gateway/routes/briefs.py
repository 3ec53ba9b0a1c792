"""日报预览路由

GET /api/briefs/preview/{app_id}: 按应用日报参数选出 Issue 并排序，不发送。
"""

from britepulse.core.exceptions import AppNotFoundError
from britepulse.core.models import Environment, Severity
from britepulse.core.priority import BriefSelectionConfig, build_brief_selection
from fastapi import APIRouter, Depends, Query

from ..deps import get_store_group

router = APIRouter()

# 预览最多读取的 Issue 数
PREVIEW_ISSUE_LIMIT = 500


@router.get("/api/briefs/preview/{app_id}")
async def preview_brief(
    app_id: str,
    environment: Environment | None = Query(default=None),
    min_severity: Severity = Query(default=Severity.P3),
    include_recently_closed: bool = Query(default=True),
    store_group=Depends(get_store_group),
):
    app = await store_group.app_store.get_app(app_id)
    if app is None:
        raise AppNotFoundError(app_id)

    issues = await store_group.issue_store.list_issues(
        app_id=app_id,
        environment=environment.value if environment else None,
        limit=PREVIEW_ISSUE_LIMIT,
    )
    config = BriefSelectionConfig(
        max_items=app.schedules.daily_brief_max_items,
        min_items=app.schedules.daily_brief_min_items,
        min_severity=min_severity,
        include_recently_closed=include_recently_closed,
    )
    selection = build_brief_selection(issues, config)

    return {
        "app_id": app.app_id,
        "app_name": app.name,
        "candidate_issues": len(issues),
        "meets_minimum": selection.meets_minimum,
        "summary": selection.summary,
        "items": [
            {
                "issue_id": item.issue.issue_id,
                "title": item.issue.title,
                "severity": item.issue.severity.value,
                "status": item.issue.status.value,
                "score": item.score,
                "reason": item.reason,
            }
            for item in selection.items
        ],
    }
