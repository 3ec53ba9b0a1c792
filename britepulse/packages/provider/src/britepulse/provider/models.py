"""数据模型 -- 调用结果与 Triage 输入

TriageInput 只包含已脱敏的证据，由 evidence 模块从 Issue 和事件构造。
"""

from typing import Literal

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token 使用统计

    key 命名对齐 OpenAI/LiteLLM 行业标准：
    prompt_tokens / completion_tokens / total_tokens
    """

    prompt_tokens: int = Field(default=0, ge=0, description="输入 token 数")
    completion_tokens: int = Field(default=0, ge=0, description="输出 token 数")
    total_tokens: int = Field(default=0, ge=0, description="总 token 数")


class ModelCallResult(BaseModel):
    """LLM 调用结果，LiteLLM 与 Echo 统一返回此类型"""

    content: str = Field(description="LLM 响应文本内容")
    model_alias: str = Field(description="请求时使用的 Proxy model_name")
    model_name: str = Field(default="", description="实际调用的模型名称")
    provider: str = Field(default="", description="实际 provider（如 openai/anthropic）")
    duration_ms: int = Field(ge=0, description="端到端耗时（毫秒）")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage,
        description="Token 使用详情",
    )


TrendDirection = Literal["increasing", "stable", "decreasing"]


class TriageInput(BaseModel):
    """交给 AI 协作方的 Issue 证据包"""

    issue_id: str
    issue_title: str
    issue_description: str = ""
    issue_type: str
    current_severity: str
    app_name: str
    environment: str

    occurrences_total: int = 0
    occurrences_24h: int = 0
    unique_users_24h_est: int = 0
    trend_direction: TrendDirection = "stable"

    sanitized_feedback: list[str] = Field(default_factory=list, description="最多 5 条")
    sanitized_stack_traces: list[str] = Field(default_factory=list, description="最多 3 条")
    affected_routes: list[str] = Field(default_factory=list, description="最多 10 条")
    affected_versions: list[str] = Field(default_factory=list, description="最多 5 条")
