"""Issue Aggregator -- 事件到 Issue 的 find-or-create 与手动合并

去重不变量：同一 (app_id, environment) 下，非终态 Issue 的 primary_fingerprint 唯一。
由两层保证：
1. 写事务内 find-or-create（进程内写锁 + BEGIN IMMEDIATE）
2. issues 上的部分唯一索引兜底：败方建单失败后重试一次，重试时命中胜方 Issue 转为追加

合并是单个多行事务：要么全部提交，要么全部回滚；写锁竞争时整体重试。
"""

import asyncio
from datetime import UTC, datetime

import aiosqlite
import structlog
from pydantic import BaseModel
from ulid import ULID

from .config import DESCRIPTION_STACK_LINES, ERROR_TITLE_MAX_LENGTH, FEEDBACK_TITLE_MAX_LENGTH
from .exceptions import BritePulseError, IssueConflictError, IssueMergeError
from .fingerprint import compute_similarity, extract_fingerprint_input
from .models.app import App
from .models.enums import TERMINAL_STATES, EventType, IssueStatus, IssueType
from .models.event import Event, FeedbackPayload
from .models.issue import Issue, IssueSeed, ReporterInfo
from .severity import infer_severity
from .store import StoreGroup, merge_issues, record_event_and_aggregate

log = structlog.get_logger()

_MERGE_MAX_ATTEMPTS = 3
_MERGE_RETRY_DELAY_S = 0.05


class AggregationResult(BaseModel):
    """find-or-create 结果"""

    issue: Issue
    is_new_issue: bool


class RelatedIssue(BaseModel):
    """相似 Issue 提示"""

    issue_id: str
    title: str
    status: IssueStatus
    similarity: float


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def build_issue_title(event: Event) -> str:
    """从事件派生 Issue 标题"""
    payload = event.payload
    if isinstance(payload, FeedbackPayload):
        category = str(payload.category).capitalize()
        return f"{category}: {_truncate(payload.description, FEEDBACK_TITLE_MAX_LENGTH)}"
    if event.is_error:
        error_type = getattr(payload, "error_type", None) or "Error"
        message = getattr(payload, "message", "") or "Unknown error"
        return f"{error_type}: {_truncate(message, ERROR_TITLE_MAX_LENGTH)}"
    return f"Event: {event.event_type}"


def build_issue_description(event: Event) -> str:
    """从事件派生 Issue 描述"""
    parts = [
        f"Route: {event.route_or_url}",
        f"Version: {event.version}",
        f"Environment: {event.environment}",
    ]
    payload = event.payload
    if isinstance(payload, FeedbackPayload):
        parts.append(f"\nDescription: {payload.description or 'N/A'}")
        if payload.reproduction_steps:
            parts.append(f"\nReproduction Steps: {payload.reproduction_steps}")
    elif event.is_error:
        parts.append(f"\nError: {getattr(payload, 'message', '') or 'Unknown'}")
        stack = getattr(payload, "stack", None)
        if stack:
            head = "\n".join(stack.splitlines()[:DESCRIPTION_STACK_LINES])
            parts.append(f"\nStack Trace:\n{head}")
    return "\n".join(parts)


def issue_type_for(event: Event) -> IssueType:
    if event.is_error:
        return IssueType.BUG
    if isinstance(event.payload, FeedbackPayload):
        return IssueType(event.payload.category.value)
    return IssueType.FEEDBACK


def reporter_for(event: Event) -> ReporterInfo | None:
    """匿名用户不记录上报者"""
    if event.user.is_anonymous:
        return None
    return ReporterInfo(
        user_id=event.user.user_id,
        role=event.user.role,
        email=event.user.email,
    )


def user_key_for(event: Event) -> str:
    """影响用户数估计用的身份键：匿名用户按会话计"""
    if event.user.is_anonymous:
        return f"session:{event.session_id}"
    return f"user:{event.user.user_id}"


def build_issue_seed(event: Event, app: App | None, seen_at: datetime) -> IssueSeed:
    """由触发事件构造新 Issue 种子"""
    return IssueSeed(
        app_id=event.app_id,
        environment=event.environment,
        title=build_issue_title(event),
        description=build_issue_description(event),
        issue_type=issue_type_for(event),
        severity=infer_severity(event.event_type, event.environment, event.payload),
        primary_fingerprint=event.fingerprint if event.is_error else None,
        initial_event_id=event.event_id,
        initial_user_id=None if event.user.is_anonymous else event.user.user_id,
        seen_at=seen_at,
        reported_by=reporter_for(event),
        assigned_to=app.first_owner if app else None,
    )


def _is_open_fingerprint_conflict(error: Exception) -> bool:
    if not isinstance(error, aiosqlite.IntegrityError):
        return False
    text = str(error)
    return "idx_issues_open_fingerprint" in text or "issues.primary_fingerprint" in text


def _is_lock_contention(error: Exception) -> bool:
    return isinstance(error, aiosqlite.OperationalError) and "locked" in str(error)


class IssueAggregator:
    """Issue 聚合器：持有 StoreGroup 引用，无全局状态"""

    def __init__(self, stores: StoreGroup) -> None:
        self._stores = stores

    async def aggregate(
        self,
        event: Event,
        app: App | None = None,
        now: datetime | None = None,
    ) -> AggregationResult:
        """写入事件并归入 Issue

        错误事件（带指纹）命中非终态 Issue 时追加；否则新建。
        反馈事件总是新建。

        Raises:
            IssueConflictError: 重试一次后仍然指纹冲突
        """
        now = now or datetime.now(UTC)
        seed = build_issue_seed(event, app, now)
        user_key = user_key_for(event)

        try:
            return await self._record(event, seed, user_key, now)
        except aiosqlite.IntegrityError as e:
            if not _is_open_fingerprint_conflict(e):
                raise
            log.warning(
                "issue_create_conflict_retry",
                app_id=event.app_id,
                environment=str(event.environment),
                fingerprint=event.fingerprint,
                event_id=event.event_id,
            )

        try:
            return await self._record(event, seed, user_key, now)
        except aiosqlite.IntegrityError as e:
            if not _is_open_fingerprint_conflict(e):
                raise
            raise IssueConflictError(
                f"Fingerprint {event.fingerprint} still conflicting after retry"
            ) from e

    async def _record(
        self,
        event: Event,
        seed: IssueSeed,
        user_key: str,
        now: datetime,
    ) -> AggregationResult:
        issue, created = await record_event_and_aggregate(
            self._stores,
            event,
            seed,
            issue_id=str(ULID()),
            user_key=user_key,
            seen_at=now,
        )
        log.info(
            "issue_created" if created else "issue_event_appended",
            issue_id=issue.issue_id,
            event_id=event.event_id,
            fingerprint=event.fingerprint,
            occurrences_total=issue.counts.occurrences_total,
        )
        return AggregationResult(issue=issue, is_new_issue=created)

    async def merge(
        self,
        target_id: str,
        source_ids: list[str],
        now: datetime | None = None,
    ) -> Issue:
        """把多个源 Issue 合并进目标 Issue

        Raises:
            IssueNotFoundError: 目标或源 Issue 不存在
            IssueMergeError: 校验失败或事务失败（已整体回滚）
        """
        sources = list(dict.fromkeys(source_ids))
        if not sources:
            raise IssueMergeError("source_issue_ids must be a non-empty array")
        if target_id in sources:
            raise IssueMergeError("Target issue cannot be merged into itself")

        merged_at = now or datetime.now(UTC)
        for attempt in range(1, _MERGE_MAX_ATTEMPTS + 1):
            try:
                issue = await merge_issues(self._stores, target_id, sources, merged_at)
            except BritePulseError:
                raise
            except aiosqlite.Error as e:
                if _is_lock_contention(e) and attempt < _MERGE_MAX_ATTEMPTS:
                    log.warning("issue_merge_retry", target_id=target_id, attempt=attempt)
                    await asyncio.sleep(_MERGE_RETRY_DELAY_S * attempt)
                    continue
                log.error(
                    "issue_merge_failed",
                    target_id=target_id,
                    source_ids=sources,
                    error_type=type(e).__name__,
                )
                raise IssueMergeError(f"Merge into {target_id} failed: {e}") from e

            log.info(
                "issues_merged",
                target_id=target_id,
                source_ids=sources,
                occurrences_total=issue.counts.occurrences_total,
            )
            return issue

        raise IssueMergeError(f"Merge into {target_id} failed after {_MERGE_MAX_ATTEMPTS} attempts")

    async def find_related_issues(
        self,
        issue: Issue,
        limit: int = 5,
        threshold: float = 0.5,
    ) -> list[RelatedIssue]:
        """基于相似度查找同 app/env 下的相关 Issue（只做提示，不参与去重）"""
        if issue.primary_fingerprint is None:
            return []
        reference = await self._representative_input(issue.issue_id)
        if reference is None:
            return []

        open_statuses = [s for s in IssueStatus if s not in TERMINAL_STATES]
        candidates = await self._stores.issue_store.list_issues(
            app_id=issue.app_id,
            environment=issue.environment.value,
            statuses=open_statuses,
            limit=200,
        )
        related: list[RelatedIssue] = []
        for candidate in candidates:
            if candidate.issue_id == issue.issue_id or candidate.primary_fingerprint is None:
                continue
            other = await self._representative_input(candidate.issue_id)
            if other is None:
                continue
            score = compute_similarity(reference, other)
            if score >= threshold:
                related.append(
                    RelatedIssue(
                        issue_id=candidate.issue_id,
                        title=candidate.title,
                        status=candidate.status,
                        similarity=score,
                    )
                )
        related.sort(key=lambda r: r.similarity, reverse=True)
        return related[:limit]

    async def _representative_input(self, issue_id: str):
        events = await self._stores.event_store.list_events_for_issue(issue_id, limit=1)
        if not events or events[0].event_type == EventType.FEEDBACK:
            return None
        return extract_fingerprint_input(events[0])
