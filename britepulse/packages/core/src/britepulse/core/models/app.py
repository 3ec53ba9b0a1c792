"""App Domain Model

应用配置：负责人、脱敏策略、AI Triage 策略和日报参数。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import RedactionProfile, Severity


class AppOwners(BaseModel):
    """应用负责人，po_emails 第一位用于新 Issue 自动分派"""

    po_emails: list[str] = Field(default_factory=list, description="产品负责人邮箱（有序）")
    engineering_owner_group: str | None = Field(default=None, description="工程负责组")


class AIPolicy(BaseModel):
    """AI Triage 策略"""

    eligible_severity_min: Severity = Field(default=Severity.P1, description="最低严重级别")
    eligible_recurrence_min: int = Field(default=5, ge=1, description="最低 24h 出现次数")


class AppPolicies(BaseModel):
    """应用策略"""

    redaction_profile: RedactionProfile = Field(
        default=RedactionProfile.STANDARD,
        description="脱敏配置档",
    )
    ai_policy: AIPolicy = Field(default_factory=AIPolicy)


class AppSchedules(BaseModel):
    """日报参数"""

    daily_brief_max_items: int = Field(default=10, ge=1, le=50)
    daily_brief_min_items: int = Field(default=5, ge=1, le=50)


class App(BaseModel):
    """App 数据模型"""

    app_id: str = Field(description="唯一标识")
    name: str = Field(min_length=1, description="应用名称")
    owners: AppOwners = Field(default_factory=AppOwners)
    policies: AppPolicies = Field(default_factory=AppPolicies)
    schedules: AppSchedules = Field(default_factory=AppSchedules)
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @property
    def first_owner(self) -> str | None:
        return self.owners.po_emails[0] if self.owners.po_emails else None
