"""AIAnalysis Domain Model

外部 AI 协作方返回的结构化分析结果，存储在 Issue.ai_analysis。
BritePulse 只依赖 confidence、next_action 和 root_cause_hypothesis，
其余字段按协作方原样保存，取值不做枚举限制。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import IssueType, NextAction, Severity


class EvidenceRef(BaseModel):
    """分析结论引用的证据（type 常见值：event / stack_trace / code_excerpt / metric / feedback）"""

    type: str = "event"
    ref_id: str | None = None
    excerpt: str | None = None
    relevance: str = ""


class FixOption(BaseModel):
    """修复方案"""

    option_number: int = 1
    description: str
    files_likely_touched: list[str] = Field(default_factory=list)
    complexity: str = "medium"
    confidence: float | None = None


class TestPlanItem(BaseModel):
    """测试计划条目"""

    test_type: str = "manual"
    description: str
    priority: str = "recommended"


class AIAnalysis(BaseModel):
    """AI Triage 分析结果"""

    analysis_id: str = Field(description="唯一标识，ULID 格式")
    model_name: str = Field(description="生成分析的模型别名")
    generated_at: datetime = Field(description="生成时间，用于 triage 冷却期判断")

    classification: IssueType | None = Field(default=None, description="分类")
    severity: Severity | None = Field(default=None, description="建议严重级别")
    severity_rationale: str = ""

    impact_summary: str = ""
    evidence_refs: list[EvidenceRef] = Field(default_factory=list)
    root_cause_hypothesis: str = ""

    fix_plan: list[FixOption] = Field(default_factory=list)
    test_plan: list[TestPlanItem] = Field(default_factory=list)
    rollout_plan: str = ""
    rollback_plan: str = ""

    confidence: float = Field(ge=0.0, le=1.0, description="置信度 0.0-1.0")
    assumptions: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)

    next_action: NextAction = Field(description="建议下一步动作")
    next_action_rationale: str = ""
    additional_info_needed: list[str] = Field(default_factory=list)
