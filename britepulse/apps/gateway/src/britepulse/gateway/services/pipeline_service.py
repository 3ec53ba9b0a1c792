"""PipelineService -- 事件入口：脱敏 -> 指纹 -> 聚合 -> 附件 -> 后台 Triage

单条事件的业务失败（校验不通过、指纹冲突）返回 RejectedEvent，不抛异常；
批量上报时各条事件独立处理，按序号给出 accepted/rejected 明细。
"""

import base64
import binascii
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from britepulse.core.aggregator import IssueAggregator
from britepulse.core.config import (
    ATTACHMENT_MAX_BYTES,
    ATTACHMENT_RETENTION_DAYS,
    REDACTION_MAX_DEPTH,
)
from britepulse.core.eligibility import TriageEligibilityConfig, check_triage_eligibility
from britepulse.core.exceptions import AppNotFoundError, IssueConflictError
from britepulse.core.fingerprint import extract_fingerprint_input, generate_fingerprint
from britepulse.core.models import (
    App,
    Attachment,
    AttachmentUpload,
    Environment,
    Event,
    EventInput,
    EventUser,
    Issue,
)
from britepulse.core.redaction import redact
from britepulse.core.store import StoreGroup, write_transaction
from britepulse.core.store.attachment_store import compute_hash_and_size
from pydantic import BaseModel, Field, ValidationError
from ulid import ULID

log = structlog.get_logger()

_DATA_URL_PREFIX = "base64,"


class PipelineResult(BaseModel):
    """单条事件处理成功

    event / issue 供调用方直接使用，不进入 HTTP 响应（响应只带 id）。
    """

    index: int = 0
    event_id: str
    issue_id: str
    event: Event = Field(exclude=True)
    issue: Issue = Field(exclude=True)
    is_new_issue: bool
    fingerprint: str | None = None
    redactions_applied: int = 0
    attachment_ids: list[str] = Field(default_factory=list)


class RejectedEvent(BaseModel):
    """单条事件被拒绝"""

    index: int = 0
    code: str
    reason: str


class BatchResult(BaseModel):
    accepted: list[PipelineResult] = Field(default_factory=list)
    rejected: list[RejectedEvent] = Field(default_factory=list)


def _validation_reason(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "event"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def decode_attachment_data(data: str) -> bytes:
    """解码 base64 附件内容，兼容 data URL 前缀

    Raises:
        binascii.Error: 不是合法 base64
    """
    if data.startswith("data:") and _DATA_URL_PREFIX in data:
        data = data.split(_DATA_URL_PREFIX, 1)[1]
    return base64.b64decode(data, validate=True)


class PipelineService:
    """事件处理流水线

    triage_scheduler 由 gateway 注入（TriageService.schedule_background_triage），
    为 None 时不触发后台 Triage。
    """

    def __init__(
        self,
        store_group: StoreGroup,
        triage_scheduler: Callable[[str], Any] | None = None,
    ) -> None:
        self._stores = store_group
        self._aggregator = IssueAggregator(store_group)
        self._triage_scheduler = triage_scheduler

    async def process_batch(
        self,
        app_id: str,
        environment: Environment,
        raw_events: list[dict[str, Any]],
    ) -> BatchResult:
        """批量处理事件，各条独立

        Raises:
            AppNotFoundError: app_id 未注册
        """
        app = await self._stores.app_store.get_app(app_id)
        if app is None:
            raise AppNotFoundError(app_id)

        result = BatchResult()
        for index, raw in enumerate(raw_events):
            outcome = await self.process_event(raw, app, environment, index=index)
            if isinstance(outcome, RejectedEvent):
                result.rejected.append(outcome)
            else:
                result.accepted.append(outcome)

        log.info(
            "event_batch_processed",
            app_id=app_id,
            environment=str(environment),
            accepted=len(result.accepted),
            rejected=len(result.rejected),
        )
        return result

    async def process_event(
        self,
        raw_event: dict[str, Any] | EventInput,
        app: App,
        environment: Environment = Environment.PROD,
        index: int = 0,
        now: datetime | None = None,
    ) -> PipelineResult | RejectedEvent:
        """处理单条事件"""
        now = now or datetime.now(UTC)

        try:
            event_input = (
                raw_event
                if isinstance(raw_event, EventInput)
                else EventInput.model_validate(raw_event)
            )
        except ValidationError as e:
            return self._reject(index, "INVALID_EVENT", _validation_reason(e))

        # 1. 按应用配置脱敏 payload
        redaction = redact(
            event_input.payload,
            app.policies.redaction_profile,
            REDACTION_MAX_DEPTH,
        )

        # 2. 构造事件（payload 按 event_type 校验）
        try:
            event = Event(
                event_id=str(ULID()),
                app_id=app.app_id,
                environment=environment,
                event_type=event_input.event_type,
                timestamp=event_input.timestamp or now,
                session_id=event_input.session_id or str(ULID()),
                route_or_url=event_input.route_or_url,
                version=event_input.version or "unknown",
                user=event_input.user or EventUser(),
                payload=redaction.data,
                trace_id=event_input.trace_id,
                request_metadata=event_input.request_metadata,
            )
        except ValidationError as e:
            return self._reject(index, "INVALID_PAYLOAD", _validation_reason(e))

        # 3. 错误事件计算指纹
        fingerprint_input = extract_fingerprint_input(event)
        if fingerprint_input is not None:
            event = event.model_copy(update={"fingerprint": generate_fingerprint(fingerprint_input)})

        # 4. 聚合
        try:
            aggregation = await self._aggregator.aggregate(event, app, now)
        except IssueConflictError as e:
            return self._reject(index, e.code, e.message)

        # 5. 附件（单个失败不影响事件本身）
        attachment_ids: list[str] = []
        if event_input.attachments:
            attachment_ids = await self._store_attachments(event, event_input.attachments, now)
            if attachment_ids:
                event = event.model_copy(update={"attachment_refs": attachment_ids})

        # 6. 后台 Triage
        self._maybe_schedule_triage(aggregation.issue, app)

        return PipelineResult(
            index=index,
            event_id=event.event_id,
            issue_id=aggregation.issue.issue_id,
            event=event,
            issue=aggregation.issue,
            is_new_issue=aggregation.is_new_issue,
            fingerprint=event.fingerprint,
            redactions_applied=redaction.redactions_applied,
            attachment_ids=attachment_ids,
        )

    def _reject(self, index: int, code: str, reason: str) -> RejectedEvent:
        log.warning("event_rejected", index=index, code=code, reason=reason)
        return RejectedEvent(index=index, code=code, reason=reason)

    def _maybe_schedule_triage(self, issue: Issue, app: App) -> None:
        """只在纯判定通过时调度；后台任务会带着 store 中的最新分析时间再判一次"""
        if self._triage_scheduler is None or issue.primary_fingerprint is None:
            return
        decision = check_triage_eligibility(issue, TriageEligibilityConfig.from_app(app))
        if decision.eligible:
            self._triage_scheduler(issue.issue_id)

    async def _store_attachments(
        self,
        event: Event,
        uploads: list[AttachmentUpload],
        now: datetime,
    ) -> list[str]:
        """保存附件文件与元数据，并回写事件的 attachment_refs"""
        store = self._stores.attachment_store
        attachments: list[Attachment] = []
        for upload in uploads:
            if not upload.user_opted_in:
                log.warning(
                    "attachment_skipped",
                    event_id=event.event_id,
                    filename=upload.filename,
                    reason="user_not_opted_in",
                )
                continue
            try:
                content = decode_attachment_data(upload.data)
            except (binascii.Error, ValueError):
                log.warning(
                    "attachment_skipped",
                    event_id=event.event_id,
                    filename=upload.filename,
                    reason="invalid_base64",
                )
                continue
            sha256, size = compute_hash_and_size(content)
            if size == 0 or size > ATTACHMENT_MAX_BYTES:
                log.warning(
                    "attachment_skipped",
                    event_id=event.event_id,
                    filename=upload.filename,
                    reason="size_out_of_range",
                    size_bytes=size,
                )
                continue

            attachment_id = str(ULID())
            try:
                path = store.write_content(event.app_id, attachment_id, content)
            except OSError as e:
                log.error(
                    "attachment_write_failed",
                    event_id=event.event_id,
                    filename=upload.filename,
                    error=str(e),
                )
                continue
            attachments.append(
                Attachment(
                    attachment_id=attachment_id,
                    event_id=event.event_id,
                    app_id=event.app_id,
                    environment=event.environment,
                    filename=upload.filename,
                    content_type=upload.content_type,
                    size_bytes=size,
                    storage_path=str(path),
                    sha256=sha256,
                    uploaded_at=now,
                    expires_at=now + timedelta(days=ATTACHMENT_RETENTION_DAYS),
                    user_opted_in=True,
                )
            )

        if not attachments:
            return []

        attachment_ids = [a.attachment_id for a in attachments]
        async with write_transaction(self._stores):
            for attachment in attachments:
                await store.put_attachment(attachment)
            await self._stores.event_store.update_attachment_refs(event.event_id, attachment_ids)

        log.info(
            "attachments_stored",
            event_id=event.event_id,
            attachment_count=len(attachment_ids),
        )
        return attachment_ids
