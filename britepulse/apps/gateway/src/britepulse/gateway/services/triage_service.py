"""TriageService -- 资格判定 + 证据收集 + AI 分析 + 结果写回

手动触发可 force 绕过资格判定；后台触发（入库后 fire-and-forget）从不绕过。
后台任务的异常只在任务边界记录日志，不影响已完成的入库。
"""

import asyncio
from datetime import datetime

import structlog
from britepulse.core.config import TRIAGE_TIMEOUT_S
from britepulse.core.eligibility import TriageEligibilityConfig, evaluate_triage_eligibility
from britepulse.core.exceptions import IssueNotFoundError
from britepulse.core.models import AIAnalysis
from britepulse.core.store import StoreGroup, write_transaction
from britepulse.provider import ProviderError, TriageAnalyzer, build_triage_input
from pydantic import BaseModel, Field

log = structlog.get_logger()

# 证据收集读取的最大事件数
EVIDENCE_EVENT_LIMIT = 20


class TriageOutcome(BaseModel):
    """一次 Triage 调用的结果"""

    success: bool
    analysis: AIAnalysis | None = None
    skipped_reason: str | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)


class TriageService:
    """AI Triage 编排

    analyzer 为 None 表示未配置 AI 协作方，所有请求返回 skipped。
    """

    def __init__(
        self,
        store_group: StoreGroup,
        analyzer: TriageAnalyzer | None,
        timeout_s: float = TRIAGE_TIMEOUT_S,
    ) -> None:
        self._stores = store_group
        self._analyzer = analyzer
        self._timeout_s = timeout_s
        self._background_tasks: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()

    async def run_triage(
        self,
        issue_id: str,
        force: bool = False,
        now: datetime | None = None,
    ) -> TriageOutcome:
        """对单个 Issue 执行 Triage

        Raises:
            IssueNotFoundError: Issue 不存在
        """
        issue = await self._stores.issue_store.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)

        if self._analyzer is None:
            return TriageOutcome(success=False, skipped_reason="AI triage is not configured")

        app = await self._stores.app_store.get_app(issue.app_id)
        if not force:
            decision = await evaluate_triage_eligibility(
                self._stores.issue_store,
                issue,
                TriageEligibilityConfig.from_app(app),
                now,
            )
            if not decision.eligible:
                log.info("triage_skipped", issue_id=issue_id, reason=decision.reason)
                return TriageOutcome(success=False, skipped_reason=decision.reason)

        events = await self._stores.event_store.list_events_for_issue(
            issue_id, limit=EVIDENCE_EVENT_LIMIT
        )
        triage_input = build_triage_input(issue, events, app.name if app else issue.app_id)

        try:
            result = await asyncio.wait_for(
                self._analyzer.analyze(triage_input),
                timeout=self._timeout_s,
            )
        except TimeoutError:
            log.warning("triage_timeout", issue_id=issue_id, timeout_s=self._timeout_s)
            return TriageOutcome(
                success=False,
                error=f"Triage timed out after {self._timeout_s}s",
            )
        except ProviderError as e:
            log.error(
                "triage_failed",
                issue_id=issue_id,
                error=str(e),
                error_type=type(e).__name__,
                recoverable=e.recoverable,
            )
            return TriageOutcome(success=False, error=str(e))

        async with write_transaction(self._stores):
            await self._stores.issue_store.update_issue(issue_id, ai_analysis=result.analysis)

        log.info(
            "triage_stored",
            issue_id=issue_id,
            forced=force,
            confidence=result.analysis.confidence,
            warning_count=len(result.warnings),
        )
        return TriageOutcome(success=True, analysis=result.analysis, warnings=result.warnings)

    def schedule_background_triage(self, issue_id: str) -> asyncio.Task | None:
        """fire-and-forget 调度；同一 Issue 已在分析中时不重复调度"""
        if issue_id in self._in_flight:
            return None
        self._in_flight.add(issue_id)
        task = asyncio.create_task(self._run_background(issue_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _run_background(self, issue_id: str) -> None:
        try:
            await self.run_triage(issue_id, force=False)
        except Exception as e:
            log.error(
                "triage_failed",
                issue_id=issue_id,
                error=str(e),
                error_type=type(e).__name__,
                background=True,
            )
        finally:
            self._in_flight.discard(issue_id)

    async def drain(self) -> None:
        """等待所有后台任务结束（关闭时调用）"""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
