"""Issue Domain Model

Issue 是一个或多个 Event 的去重聚合，代表同一个缺陷或同一条反馈。
primary_fingerprint 非空时，在同一 (app_id, environment) 的非终态 Issue 中唯一。
event_refs 只增不减，合并进入 resolved 的源 Issue 除外。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .analysis import AIAnalysis
from .enums import TERMINAL_STATES, Environment, IssueStatus, IssueType, Severity


class IssueCounts(BaseModel):
    """Issue 计数"""

    occurrences_total: int = Field(default=1, ge=0, description="累计出现次数")
    occurrences_24h: int = Field(default=1, ge=0, description="最近 24 小时出现次数")
    unique_users_24h_est: int = Field(default=1, ge=0, description="最近 24 小时影响用户数估计")


class IssueTimestamps(BaseModel):
    """Issue 时间戳，last_seen_at >= created_at"""

    created_at: datetime
    last_seen_at: datetime
    resolved_at: datetime | None = None
    wont_fix_at: datetime | None = None

    @property
    def closed_at(self) -> datetime | None:
        return self.resolved_at or self.wont_fix_at


class IssueRouting(BaseModel):
    """Issue 分派信息"""

    assigned_to: str | None = Field(default=None, description="负责人")


class ReporterInfo(BaseModel):
    """上报者信息，匿名用户不记录"""

    user_id: str
    role: str = "user"
    email: str | None = None


class Issue(BaseModel):
    """Issue 数据模型"""

    issue_id: str = Field(description="唯一标识，ULID 格式")
    app_id: str = Field(description="所属应用")
    environment: Environment = Field(description="部署环境")
    status: IssueStatus = Field(default=IssueStatus.NEW, description="当前状态")
    severity: Severity = Field(default=Severity.P2, description="严重级别")
    title: str = Field(min_length=1, description="标题")
    description: str = Field(default="", description="描述")
    issue_type: IssueType = Field(description="Issue 类型")
    primary_fingerprint: str | None = Field(
        default=None,
        description="错误指纹，反馈类 Issue 为 null",
    )
    event_refs: list[str] = Field(default_factory=list, description="关联 Event ID（集合语义）")
    counts: IssueCounts = Field(default_factory=IssueCounts, description="计数")
    timestamps: IssueTimestamps = Field(description="时间戳")
    reported_by: ReporterInfo | None = Field(default=None, description="上报者")
    routing: IssueRouting = Field(default_factory=IssueRouting, description="分派信息")
    resolution_note: str | None = Field(default=None, description="关闭说明")
    merged_into: str | None = Field(default=None, description="被合并进的目标 Issue ID")
    ai_analysis: AIAnalysis | None = Field(default=None, description="AI Triage 结果")
    tags: list[str] = Field(default_factory=list, description="标签")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class IssueSeed(BaseModel):
    """创建 Issue 的种子数据，由 Aggregator 从触发事件派生"""

    app_id: str
    environment: Environment
    title: str = Field(min_length=1)
    description: str = ""
    issue_type: IssueType
    severity: Severity = Severity.P2
    primary_fingerprint: str | None = None
    initial_event_id: str
    initial_user_id: str | None = Field(default=None, description="用于影响用户数估计")
    seen_at: datetime = Field(description="触发事件时间，作为 created_at/last_seen_at")
    reported_by: ReporterInfo | None = None
    assigned_to: str | None = None
    tags: list[str] = Field(default_factory=list)
