"""IssueService -- Issue 查询与人工操作

状态变更、严重级别、分派在写事务内先读后写，
合并委托给 IssueAggregator（单个多行事务）。
"""

from datetime import UTC, datetime

import aiosqlite
import structlog
from britepulse.core.aggregator import IssueAggregator, RelatedIssue
from britepulse.core.exceptions import (
    AppNotFoundError,
    InvalidStatusTransitionError,
    IssueConflictError,
    IssueNotFoundError,
)
from britepulse.core.models import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    App,
    Event,
    Issue,
    IssueStatus,
    Severity,
    validate_transition,
)
from britepulse.core.store import StoreGroup, write_transaction

log = structlog.get_logger()


class IssueService:
    """Issue 业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._aggregator = IssueAggregator(store_group)

    async def get_issue(self, issue_id: str) -> Issue:
        issue = await self._stores.issue_store.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    async def list_issues(
        self,
        app_id: str | None = None,
        environment: str | None = None,
        statuses: list[IssueStatus] | None = None,
        severity: Severity | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Issue]:
        return await self._stores.issue_store.list_issues(
            app_id=app_id,
            environment=environment,
            statuses=statuses,
            severity=severity,
            limit=limit,
            offset=offset,
        )

    async def list_events(self, issue_id: str, limit: int = 50) -> list[Event]:
        await self.get_issue(issue_id)
        return await self._stores.event_store.list_events_for_issue(issue_id, limit=limit)

    async def load_context_sources(
        self, issue_id: str, event_limit: int = 20
    ) -> tuple[Issue, list[Event], App]:
        """读取生成上下文文件所需的 Issue、最近事件和所属应用"""
        issue = await self.get_issue(issue_id)
        app = await self._stores.app_store.get_app(issue.app_id)
        if app is None:
            raise AppNotFoundError(issue.app_id)
        events = await self._stores.event_store.list_events_for_issue(issue_id, limit=event_limit)
        return issue, events, app

    async def set_status(
        self,
        issue_id: str,
        status: IssueStatus,
        resolution_note: str | None = None,
        now: datetime | None = None,
    ) -> Issue:
        """变更状态

        关闭时记录 resolved_at / wont_fix_at；重新打开时清空关闭时间。
        已被合并的 Issue 不能重新打开，事件已归入合并目标。

        Raises:
            IssueNotFoundError: Issue 不存在
            InvalidStatusTransitionError: 流转不合法，或重新打开已合并的 Issue
            IssueConflictError: 重新打开时已有同指纹的未关闭 Issue
        """
        now = now or datetime.now(UTC)
        try:
            async with write_transaction(self._stores):
                issue = await self.get_issue(issue_id)
                if not validate_transition(issue.status, status):
                    allowed = ", ".join(sorted(VALID_TRANSITIONS.get(issue.status, set())))
                    raise InvalidStatusTransitionError(
                        f"Cannot transition from {issue.status} to {status}. Allowed: {allowed}"
                    )
                if issue.merged_into and status not in TERMINAL_STATES:
                    raise InvalidStatusTransitionError(
                        f"Issue {issue_id} was merged into {issue.merged_into}"
                        " and cannot be reopened"
                    )

                fields: dict = {"status": status}
                if status == IssueStatus.RESOLVED:
                    fields["resolved_at"] = now
                elif status == IssueStatus.WONT_FIX:
                    fields["wont_fix_at"] = now
                elif issue.status in TERMINAL_STATES:
                    fields["resolved_at"] = None
                    fields["wont_fix_at"] = None
                if resolution_note is not None:
                    fields["resolution_note"] = resolution_note

                updated = await self._stores.issue_store.update_issue(issue_id, **fields)
        except aiosqlite.IntegrityError as e:
            raise IssueConflictError(
                f"Issue {issue_id} cannot be reopened: an open issue already has its fingerprint"
            ) from e

        log.info(
            "issue_status_changed",
            issue_id=issue_id,
            from_status=str(issue.status),
            to_status=str(status),
        )
        if updated is None:
            raise IssueNotFoundError(issue_id)
        return updated

    async def set_severity(self, issue_id: str, severity: Severity) -> Issue:
        async with write_transaction(self._stores):
            issue = await self.get_issue(issue_id)
            updated = await self._stores.issue_store.update_issue(issue_id, severity=severity)

        log.info(
            "issue_severity_changed",
            issue_id=issue_id,
            previous=str(issue.severity),
            severity=str(severity),
        )
        if updated is None:
            raise IssueNotFoundError(issue_id)
        return updated

    async def assign(self, issue_id: str, assigned_to: str) -> Issue:
        async with write_transaction(self._stores):
            issue = await self.get_issue(issue_id)
            updated = await self._stores.issue_store.update_issue(issue_id, assigned_to=assigned_to)

        log.info(
            "issue_assigned",
            issue_id=issue_id,
            assigned_from=issue.routing.assigned_to,
            assigned_to=assigned_to,
        )
        if updated is None:
            raise IssueNotFoundError(issue_id)
        return updated

    async def merge(self, target_id: str, source_ids: list[str]) -> Issue:
        return await self._aggregator.merge(target_id, source_ids)

    async def related(
        self,
        issue_id: str,
        limit: int = 5,
        threshold: float = 0.5,
    ) -> list[RelatedIssue]:
        issue = await self.get_issue(issue_id)
        return await self._aggregator.find_related_issues(issue, limit=limit, threshold=threshold)
