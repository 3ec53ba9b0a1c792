"""Store Protocol 接口定义

定义 IssueStore、EventStore、AppStore、AttachmentStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
写方法都不提交事务，事务边界由 transaction 模块管理。
"""

from datetime import datetime
from typing import Any, Protocol

from ..models.app import App
from ..models.attachment import Attachment
from ..models.enums import IssueStatus, Severity
from ..models.event import Event
from ..models.issue import Issue, IssueSeed


class IssueStore(Protocol):
    """Issue 存储接口"""

    async def find_non_terminal_issue_by_fingerprint(
        self,
        app_id: str,
        environment: str,
        fingerprint: str,
    ) -> Issue | None:
        """查询同一 (app, env) 下指纹相同的非终态 Issue"""
        ...

    async def create_issue(self, seed: IssueSeed, issue_id: str, user_key: str) -> Issue:
        """创建 Issue；非终态指纹冲突时抛出完整性错误"""
        ...

    async def append_event_and_increment(
        self,
        issue_id: str,
        event_id: str,
        user_key: str,
        seen_at: datetime,
    ) -> bool:
        """原子追加事件引用并自增计数"""
        ...

    async def get_issue(self, issue_id: str) -> Issue | None:
        """根据 issue_id 查询 Issue"""
        ...

    async def update_issue(self, issue_id: str, **fields: Any) -> Issue | None:
        """部分更新 Issue 字段"""
        ...

    async def list_issues(
        self,
        app_id: str | None = None,
        environment: str | None = None,
        statuses: list[IssueStatus] | None = None,
        severity: Severity | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Issue]:
        """查询 Issue 列表"""
        ...

    async def get_last_analysis_at(self, issue_id: str) -> datetime | None:
        """读取最近一次 AI 分析时间"""
        ...

    async def merge_into(
        self,
        target_id: str,
        source_ids: list[str],
        merged_at: datetime,
    ) -> None:
        """把源 Issue 合并进目标 Issue"""
        ...


class EventStore(Protocol):
    """Event 存储接口

    事件只允许插入；唯一的更新是事后补充 attachment_refs。
    """

    async def create_event(self, event: Event) -> Event:
        """写入事件"""
        ...

    async def get_event(self, event_id: str) -> Event | None:
        """根据 event_id 查询事件"""
        ...

    async def list_events_for_issue(self, issue_id: str, limit: int = 20) -> list[Event]:
        """查询 Issue 关联的事件"""
        ...

    async def update_attachment_refs(self, event_id: str, attachment_refs: list[str]) -> None:
        """补充事件的附件引用"""
        ...


class AppStore(Protocol):
    """App 存储接口"""

    async def save_app(self, app: App) -> None:
        """创建或覆盖应用配置"""
        ...

    async def get_app(self, app_id: str) -> App | None:
        """根据 app_id 查询应用"""
        ...


class AttachmentStore(Protocol):
    """Attachment 存储接口"""

    async def put_attachment(self, attachment: Attachment) -> None:
        """写入附件元数据"""
        ...

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        """根据 attachment_id 查询附件元数据"""
        ...

    async def list_attachments_for_event(self, event_id: str) -> list[Attachment]:
        """查询事件的所有附件"""
        ...
