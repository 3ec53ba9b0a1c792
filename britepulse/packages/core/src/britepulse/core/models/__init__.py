"""BritePulse Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .analysis import AIAnalysis, EvidenceRef, FixOption, TestPlanItem
from .app import AIPolicy, App, AppOwners, AppPolicies, AppSchedules
from .attachment import Attachment, AttachmentUpload
from .enums import (
    ERROR_EVENT_TYPES,
    SEVERITY_ORDER,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    Environment,
    EventType,
    FeedbackCategory,
    IssueStatus,
    IssueType,
    NextAction,
    RedactionProfile,
    Severity,
    validate_transition,
)
from .event import (
    BackendErrorPayload,
    Event,
    EventInput,
    EventPayload,
    EventUser,
    FeedbackPayload,
    FrontendErrorPayload,
    RequestMetadata,
    parse_payload,
)
from .issue import (
    Issue,
    IssueCounts,
    IssueRouting,
    IssueSeed,
    IssueTimestamps,
    ReporterInfo,
)

__all__ = [
    # 枚举
    "Environment",
    "EventType",
    "FeedbackCategory",
    "IssueStatus",
    "IssueType",
    "NextAction",
    "RedactionProfile",
    "Severity",
    "SEVERITY_ORDER",
    "ERROR_EVENT_TYPES",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # Event
    "Event",
    "EventInput",
    "EventPayload",
    "EventUser",
    "RequestMetadata",
    "FeedbackPayload",
    "FrontendErrorPayload",
    "BackendErrorPayload",
    "parse_payload",
    # Issue
    "Issue",
    "IssueCounts",
    "IssueRouting",
    "IssueSeed",
    "IssueTimestamps",
    "ReporterInfo",
    # AI 分析
    "AIAnalysis",
    "EvidenceRef",
    "FixOption",
    "TestPlanItem",
    # App
    "App",
    "AppOwners",
    "AppPolicies",
    "AIPolicy",
    "AppSchedules",
    # Attachment
    "Attachment",
    "AttachmentUpload",
]
