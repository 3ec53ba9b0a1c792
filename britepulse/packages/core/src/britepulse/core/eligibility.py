"""Triage Eligibility Gate -- 判断 Issue 是否值得做 AI 深度分析

只做判定，不调用 AI。手动触发可用 force 绕过，后台触发从不绕过（由调用方控制）。
不合格时总是返回明确的原因字符串。
"""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from .config import TRIAGE_COOLDOWN_MINUTES
from .models.app import App
from .models.enums import Severity
from .models.issue import Issue
from .store.protocols import IssueStore

ELIGIBLE_REASON = "Eligible"


class TriageEligibilityConfig(BaseModel):
    """资格判定配置"""

    min_severity: Severity = Field(default=Severity.P1, description="严重级别下限")
    min_recurrence: int = Field(default=5, ge=0, description="24 小时出现次数下限")
    cooldown_minutes: int = Field(
        default=TRIAGE_COOLDOWN_MINUTES,
        ge=0,
        description="两次分析之间的最短间隔",
    )

    @classmethod
    def from_app(cls, app: App | None) -> "TriageEligibilityConfig":
        """从应用 AI 策略构造；无应用配置时使用默认值"""
        if app is None:
            return cls()
        policy = app.policies.ai_policy
        return cls(
            min_severity=policy.eligible_severity_min,
            min_recurrence=policy.eligible_recurrence_min,
        )


class EligibilityDecision(BaseModel):
    eligible: bool
    reason: str


def check_triage_eligibility(
    issue: Issue,
    config: TriageEligibilityConfig | None = None,
    now: datetime | None = None,
    last_analysis_at: datetime | None = None,
) -> EligibilityDecision:
    """按严重级别、出现次数、冷却期依次判定

    Args:
        issue: 待判定 Issue
        config: 判定配置
        now: 当前时间
        last_analysis_at: 最近一次分析时间；缺省取 issue.ai_analysis.generated_at
    """
    config = config or TriageEligibilityConfig()
    now = now or datetime.now(UTC)

    if not issue.severity.at_least(config.min_severity):
        return EligibilityDecision(
            eligible=False,
            reason=f"Severity {issue.severity} below threshold {config.min_severity}",
        )

    occurrences = issue.counts.occurrences_24h
    if occurrences < config.min_recurrence:
        return EligibilityDecision(
            eligible=False,
            reason=f"Occurrences ({occurrences}) below threshold ({config.min_recurrence})",
        )

    if last_analysis_at is None and issue.ai_analysis is not None:
        last_analysis_at = issue.ai_analysis.generated_at
    if last_analysis_at is not None:
        if now - last_analysis_at < timedelta(minutes=config.cooldown_minutes):
            return EligibilityDecision(
                eligible=False,
                reason=(
                    "Recent analysis exists "
                    f"(less than {config.cooldown_minutes} minutes old)"
                ),
            )

    return EligibilityDecision(eligible=True, reason=ELIGIBLE_REASON)


async def evaluate_triage_eligibility(
    issue_store: IssueStore,
    issue: Issue,
    config: TriageEligibilityConfig | None = None,
    now: datetime | None = None,
) -> EligibilityDecision:
    """读取 store 中最新的分析时间后判定（内存中的 issue 可能已过期）"""
    last_analysis_at = await issue_store.get_last_analysis_at(issue.issue_id)
    return check_triage_eligibility(issue, config, now, last_analysis_at)
