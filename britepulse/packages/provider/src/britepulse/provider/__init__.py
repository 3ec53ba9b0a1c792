"""BritePulse Provider -- AI Triage 协作方

packages/provider 的公开接口导出。
"""

# 核心组件
from .client import LiteLLMClient

# 配置
from .config import ProviderConfig, load_provider_config
from .context import IssueContext, build_issue_context, render_issue_context_markdown
from .echo_adapter import EchoTriageAdapter
from .evidence import build_triage_input

# 异常
from .exceptions import ProviderError, ProxyUnreachableError, TriageParseError

# 数据模型
from .models import ModelCallResult, TokenUsage, TriageInput
from .triage import TriageAnalyzer, TriageResult, parse_analysis_json, review_analysis

__all__ = [
    "ModelCallResult",
    "TokenUsage",
    "TriageInput",
    "TriageResult",
    "LiteLLMClient",
    "EchoTriageAdapter",
    "TriageAnalyzer",
    "build_triage_input",
    "IssueContext",
    "build_issue_context",
    "render_issue_context_markdown",
    "parse_analysis_json",
    "review_analysis",
    "ProviderConfig",
    "load_provider_config",
    "ProviderError",
    "ProxyUnreachableError",
    "TriageParseError",
]
