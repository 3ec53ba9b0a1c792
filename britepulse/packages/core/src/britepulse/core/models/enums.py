"""枚举定义

包含 IssueStatus 状态机、Severity、EventType、IssueType 等枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class Environment(StrEnum):
    """部署环境"""

    PROD = "prod"
    STAGE = "stage"
    DEV = "dev"


class EventType(StrEnum):
    """事件类型"""

    FEEDBACK = "feedback"
    FRONTEND_ERROR = "frontend_error"
    BACKEND_ERROR = "backend_error"


# 可计算指纹的错误类事件
ERROR_EVENT_TYPES: set[EventType] = {
    EventType.FRONTEND_ERROR,
    EventType.BACKEND_ERROR,
}


class FeedbackCategory(StrEnum):
    """用户反馈分类"""

    BUG = "bug"
    FEATURE = "feature"
    FEEDBACK = "feedback"


class IssueType(StrEnum):
    """Issue 类型"""

    BUG = "bug"
    FEATURE = "feature"
    FEEDBACK = "feedback"
    QUESTION = "question"


class Severity(StrEnum):
    """严重级别，P0 最高"""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        """级别序号，P0=0 ... P3=3，越小越严重"""
        return SEVERITY_ORDER.index(self)

    def at_least(self, floor: "Severity") -> bool:
        """是否不低于给定下限（按序号比较）"""
        return self.rank <= floor.rank


SEVERITY_ORDER: list[Severity] = [Severity.P0, Severity.P1, Severity.P2, Severity.P3]


class IssueStatus(StrEnum):
    """Issue 状态机

    merged 不是独立状态：合并后的源 Issue 记为 resolved + merged_into。
    """

    NEW = "new"
    TRIAGED = "triaged"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    SNOOZED = "snoozed"
    RESOLVED = "resolved"
    WONT_FIX = "wont_fix"


# 合法状态流转
VALID_TRANSITIONS: dict[IssueStatus, set[IssueStatus]] = {
    IssueStatus.NEW: {
        IssueStatus.TRIAGED,
        IssueStatus.IN_PROGRESS,
        IssueStatus.RESOLVED,
        IssueStatus.WONT_FIX,
    },
    IssueStatus.TRIAGED: {
        IssueStatus.IN_PROGRESS,
        IssueStatus.BLOCKED,
        IssueStatus.SNOOZED,
        IssueStatus.RESOLVED,
        IssueStatus.WONT_FIX,
    },
    IssueStatus.IN_PROGRESS: {
        IssueStatus.BLOCKED,
        IssueStatus.SNOOZED,
        IssueStatus.RESOLVED,
        IssueStatus.WONT_FIX,
    },
    IssueStatus.BLOCKED: {
        IssueStatus.IN_PROGRESS,
        IssueStatus.RESOLVED,
        IssueStatus.WONT_FIX,
    },
    IssueStatus.SNOOZED: {
        IssueStatus.TRIAGED,
        IssueStatus.IN_PROGRESS,
        IssueStatus.RESOLVED,
        IssueStatus.WONT_FIX,
    },
    # 已关闭 Issue 可重新打开
    IssueStatus.RESOLVED: {IssueStatus.TRIAGED, IssueStatus.IN_PROGRESS},
    IssueStatus.WONT_FIX: {IssueStatus.TRIAGED, IssueStatus.IN_PROGRESS},
}

# 终态：不参与指纹匹配
TERMINAL_STATES: set[IssueStatus] = {
    IssueStatus.RESOLVED,
    IssueStatus.WONT_FIX,
}


class RedactionProfile(StrEnum):
    """脱敏配置档"""

    STRICT = "strict"
    STANDARD = "standard"
    RELAXED = "relaxed"


class NextAction(StrEnum):
    """AI 分析建议的下一步动作"""

    INVESTIGATE = "investigate"
    REQUEST_INFO = "request_info"
    ROUTE_ENGINEERING = "route_engineering"
    CREATE_TICKET = "create_ticket"
    MONITOR_ONLY = "monitor_only"


def validate_transition(from_status: IssueStatus, to_status: IssueStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
