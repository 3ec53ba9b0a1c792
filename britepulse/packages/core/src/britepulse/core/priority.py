"""Priority Scorer / Selector -- 日报 Issue 排序与选择

纯函数：不读写 store，调用方传入 Issue 集合与当前时间。
"""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from .models.enums import SEVERITY_ORDER, Severity
from .models.issue import Issue

# 严重级别基础分
SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.P0: 100,
    Severity.P1: 60,
    Severity.P2: 30,
    Severity.P3: 10,
}

SEVERITY_LABELS: dict[Severity, str] = {
    Severity.P0: "critical",
    Severity.P1: "high",
    Severity.P2: "medium",
    Severity.P3: "low",
}

RECURRENCE_CAP = 50
RECURRENCE_MIN_BONUS = 10
USER_IMPACT_FACTOR = 3
USER_IMPACT_CAP = 30
USER_IMPACT_MIN_BONUS = 5
NEW_ISSUE_BONUS = 20
ANALYSIS_BONUS = 10
RECENT_WINDOW = timedelta(hours=24)


class ScoredIssue(BaseModel):
    """单个 Issue 的得分与得分原因"""

    score: int
    reasons: list[str] = Field(default_factory=list)

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)


class RankedIssue(BaseModel):
    issue: Issue
    score: int
    reason: str


class BriefSelectionConfig(BaseModel):
    """日报选择配置"""

    max_items: int = Field(default=10, ge=1)
    min_items: int = Field(default=5, ge=0, description="仅供调用方判断是否发送，不做补齐")
    min_severity: Severity = Field(default=Severity.P3, description="严重级别下限")
    include_recently_closed: bool = Field(default=True, description="是否包含 24 小时内关闭的 Issue")


class BriefSelection(BaseModel):
    """选择结果"""

    items: list[RankedIssue] = Field(default_factory=list)
    min_items: int = 0
    summary: str = ""

    @property
    def meets_minimum(self) -> bool:
        return len(self.items) >= self.min_items


def calculate_brief_score(issue: Issue, now: datetime | None = None) -> ScoredIssue:
    """计算日报优先级得分

    基础分按严重级别；出现次数、影响用户数只在超过阈值时加分；
    24 小时内新建和已有 AI 分析各有固定加分。
    """
    now = now or datetime.now(UTC)
    score = SEVERITY_WEIGHTS[issue.severity]
    reasons = [f"severity {issue.severity}"]

    occurrences = issue.counts.occurrences_24h
    recurrence_score = min(occurrences, RECURRENCE_CAP)
    if recurrence_score > RECURRENCE_MIN_BONUS:
        score += recurrence_score
        reasons.append(f"{occurrences} occurrences/24h")

    users = issue.counts.unique_users_24h_est
    user_score = min(users * USER_IMPACT_FACTOR, USER_IMPACT_CAP)
    if user_score > USER_IMPACT_MIN_BONUS:
        score += user_score
        reasons.append(f"{users} users affected")

    if issue.timestamps.created_at > now - RECENT_WINDOW:
        score += NEW_ISSUE_BONUS
        reasons.append("new in last 24h")

    if issue.ai_analysis is not None:
        score += ANALYSIS_BONUS
        reasons.append("AI analyzed")

    return ScoredIssue(score=score, reasons=reasons)


def _is_selectable(issue: Issue, config: BriefSelectionConfig, cutoff: datetime) -> bool:
    if not issue.severity.at_least(config.min_severity):
        return False
    if issue.is_terminal:
        if not config.include_recently_closed:
            return False
        closed_at = issue.timestamps.closed_at or issue.timestamps.last_seen_at
        if closed_at < cutoff:
            return False
    return True


def select_issues_for_brief(
    issues: list[Issue],
    config: BriefSelectionConfig | None = None,
    now: datetime | None = None,
) -> list[RankedIssue]:
    """筛选并排序日报 Issue

    排序稳定：同分时保持输入顺序。返回前 min(len, max_items) 条。
    """
    config = config or BriefSelectionConfig()
    now = now or datetime.now(UTC)
    cutoff = now - RECENT_WINDOW

    ranked: list[RankedIssue] = []
    for issue in issues:
        if not _is_selectable(issue, config, cutoff):
            continue
        scored = calculate_brief_score(issue, now)
        ranked.append(RankedIssue(issue=issue, score=scored.score, reason=scored.reason))

    ranked.sort(key=lambda item: item.score, reverse=True)
    return ranked[: min(len(ranked), config.max_items)]


def build_brief_selection(
    issues: list[Issue],
    config: BriefSelectionConfig | None = None,
    now: datetime | None = None,
) -> BriefSelection:
    config = config or BriefSelectionConfig()
    items = select_issues_for_brief(issues, config, now)
    return BriefSelection(
        items=items,
        min_items=config.min_items,
        summary=get_selection_summary(items),
    )


def group_by_severity(ranked: list[RankedIssue]) -> dict[Severity, list[RankedIssue]]:
    groups: dict[Severity, list[RankedIssue]] = {s: [] for s in SEVERITY_ORDER}
    for item in ranked:
        groups[item.issue.severity].append(item)
    return groups


def get_selection_summary(ranked: list[RankedIssue]) -> str:
    """形如 "3 issues: 1 critical, 2 low" 的摘要"""
    groups = group_by_severity(ranked)
    parts = [
        f"{len(groups[severity])} {SEVERITY_LABELS[severity]}"
        for severity in SEVERITY_ORDER
        if groups[severity]
    ]
    return f"{len(ranked)} issues: {', '.join(parts)}"
