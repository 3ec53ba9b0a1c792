"""Event Domain Model

事件一经创建不可变，唯一例外是事后补充 attachment_refs。
event_id 使用 ULID 格式，时间有序。
payload 按 event_type 区分为三种变体（tagged union）。
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .attachment import AttachmentUpload
from .enums import ERROR_EVENT_TYPES, Environment, EventType, FeedbackCategory

# 匿名用户标识
ANONYMOUS_USER_IDS: frozenset[str] = frozenset({"", "anonymous", "unknown"})


class EventUser(BaseModel):
    """事件上报用户"""

    user_id: str = Field(default="anonymous", description="用户 ID，匿名为 anonymous")
    role: str = Field(default="user", description="用户角色")
    email: str | None = Field(default=None, description="用户邮箱")

    @property
    def is_anonymous(self) -> bool:
        return self.user_id.strip().lower() in ANONYMOUS_USER_IDS


class RequestMetadata(BaseModel):
    """后端请求元数据"""

    request_id: str | None = None
    service_name: str | None = None
    revision: str | None = None
    http_status: int | None = None


class FeedbackPayload(BaseModel):
    """用户反馈 payload"""

    model_config = ConfigDict(extra="allow")

    category: FeedbackCategory = Field(description="反馈分类")
    description: str = Field(min_length=1, description="反馈描述")
    reproduction_steps: str | None = Field(default=None, description="复现步骤")
    allow_contact: bool | None = Field(default=None, description="是否允许联系")


class FrontendErrorPayload(BaseModel):
    """前端错误 payload"""

    model_config = ConfigDict(extra="allow")

    error_type: str | None = Field(default=None, description="错误类型，缺省按 UnknownError")
    message: str = Field(description="错误信息")
    stack: str | None = Field(default=None, description="调用栈")
    component_stack: str | None = None
    source_file: str | None = None
    line_number: int | None = None
    column_number: int | None = None


class BackendErrorPayload(BaseModel):
    """后端错误 payload"""

    model_config = ConfigDict(extra="allow")

    error_type: str | None = Field(default=None, description="错误类型，缺省按 UnknownError")
    message: str = Field(description="错误信息")
    stack: str | None = Field(default=None, description="调用栈")
    service_name: str | None = None
    revision: str | None = None
    endpoint: str | None = None
    http_method: str | None = None
    http_status: int | None = Field(default=None, description="HTTP 状态码")


EventPayload = FeedbackPayload | FrontendErrorPayload | BackendErrorPayload

# event_type -> payload 变体
PAYLOAD_MODELS: dict[EventType, type[BaseModel]] = {
    EventType.FEEDBACK: FeedbackPayload,
    EventType.FRONTEND_ERROR: FrontendErrorPayload,
    EventType.BACKEND_ERROR: BackendErrorPayload,
}


def parse_payload(event_type: EventType | str, payload: Any) -> EventPayload:
    """按 event_type 解析 payload 变体

    Raises:
        ValueError: event_type 未知
        pydantic.ValidationError: payload 缺少必填字段
    """
    model = PAYLOAD_MODELS[EventType(event_type)]
    if isinstance(payload, model):
        return payload
    return model.model_validate(payload)


class Event(BaseModel):
    """Event 数据模型

    由 pipeline 入口从 SDK 上报数据创建，Issue 通过 event_refs 引用。
    """

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    app_id: str = Field(description="所属应用")
    environment: Environment = Field(default=Environment.PROD, description="部署环境")
    event_type: EventType = Field(description="事件类型")
    timestamp: datetime = Field(description="事件时间戳")
    session_id: str = Field(description="会话 ID")
    route_or_url: str = Field(description="路由或 URL")
    version: str = Field(default="unknown", description="应用版本")
    user: EventUser = Field(default_factory=EventUser, description="上报用户")
    payload: EventPayload = Field(description="按 event_type 区分的 payload")
    fingerprint: str | None = Field(default=None, description="错误指纹")
    trace_id: str | None = Field(default=None, description="追踪标识")
    attachment_refs: list[str] = Field(default_factory=list, description="附件 ID 列表")
    request_metadata: RequestMetadata | None = Field(default=None, description="请求元数据")

    @model_validator(mode="before")
    @classmethod
    def _select_payload_variant(cls, data: Any) -> Any:
        if isinstance(data, dict) and "event_type" in data and "payload" in data:
            data = dict(data)
            data["payload"] = parse_payload(data["event_type"], data["payload"])
        return data

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        # 无时区的时间按 UTC 处理，统一存储为 UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @property
    def is_error(self) -> bool:
        return self.event_type in ERROR_EVENT_TYPES


class EventInput(BaseModel):
    """SDK 上报的原始事件（未脱敏、未分配 ID）"""

    event_type: EventType = Field(description="事件类型")
    timestamp: datetime | None = Field(default=None, description="缺省为接收时间")
    session_id: str | None = Field(default=None, description="缺省自动生成")
    trace_id: str | None = None
    route_or_url: str = Field(min_length=1, description="路由或 URL")
    version: str | None = None
    user: EventUser | None = None
    payload: dict[str, Any] = Field(description="原始 payload")
    request_metadata: RequestMetadata | None = None
    attachments: list[AttachmentUpload] = Field(default_factory=list, description="随事件上传的附件")
