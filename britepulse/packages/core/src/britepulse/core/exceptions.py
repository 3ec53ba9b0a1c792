"""Core 领域异常

store 层和 aggregator 抛出的业务异常，gateway 映射为 HTTP 错误。
"""


class BritePulseError(Exception):
    """领域异常基类

    Attributes:
        code: 机器可读错误码
    """

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class IssueNotFoundError(BritePulseError):
    """Issue 不存在"""

    code = "ISSUE_NOT_FOUND"

    def __init__(self, issue_id: str) -> None:
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id


class AppNotFoundError(BritePulseError):
    """App 不存在"""

    code = "APP_NOT_FOUND"

    def __init__(self, app_id: str) -> None:
        super().__init__(f"App not found: {app_id}")
        self.app_id = app_id


class IssueMergeError(BritePulseError):
    """合并失败，整个合并事务已回滚"""

    code = "MERGE_FAILED"


class IssueConflictError(BritePulseError):
    """find-or-create 重试后仍然冲突"""

    code = "ISSUE_CONFLICT"


class InvalidStatusTransitionError(BritePulseError):
    """非法状态流转"""

    code = "INVALID_STATUS_TRANSITION"
