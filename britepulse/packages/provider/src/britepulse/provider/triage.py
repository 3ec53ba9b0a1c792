"""TriageAnalyzer -- Issue 证据包 -> AIAnalysis

流程：
1. 渲染用户消息，安全检查不通过时整串 sanitize
2. 调用 LLM 客户端（LiteLLMClient 或 EchoTriageAdapter）
3. 解析 JSON（允许 Markdown 代码块包裹）
4. review_analysis 产出规则告警（不阻断），再校验为 AIAnalysis：
   只有 confidence / next_action / root_cause_hypothesis 非法才算解析失败，
   其余字段非法时丢弃并记告警
"""

import json
import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError
from ulid import ULID

from britepulse.core.models import (
    AIAnalysis,
    EvidenceRef,
    FixOption,
    IssueType,
    Severity,
    TestPlanItem,
)
from britepulse.core.redaction import sanitize_for_ai, validate_for_ai

from .exceptions import TriageParseError
from .models import ModelCallResult, TriageInput
from .prompts import TRIAGE_SYSTEM_PROMPT, build_triage_user_message

log = structlog.get_logger()

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

REQUIRED_FIELDS: tuple[str, ...] = (
    "classification",
    "severity",
    "severity_rationale",
    "impact_summary",
    "root_cause_hypothesis",
    "fix_plan",
    "test_plan",
    "rollout_plan",
    "rollback_plan",
    "confidence",
    "next_action",
)

# 不高于此置信度视为低置信度
LOW_CONFIDENCE_THRESHOLD = 0.5
_LOW_CONFIDENCE_ACTIONS = {"request_info", "route_engineering"}

_ENUM_FIELDS: dict[str, type[StrEnum]] = {"classification": IssueType, "severity": Severity}
_TEXT_FIELDS = (
    "severity_rationale",
    "impact_summary",
    "rollout_plan",
    "rollback_plan",
    "next_action_rationale",
)
_TEXT_LIST_FIELDS = ("assumptions", "limitations", "additional_info_needed")
_NESTED_ITEM_MODELS: dict[str, type[BaseModel]] = {
    "evidence_refs": EvidenceRef,
    "fix_plan": FixOption,
    "test_plan": TestPlanItem,
}


class CompletionClient(Protocol):
    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = ...,
        **kwargs: Any,
    ) -> ModelCallResult: ...


class TriageResult(BaseModel):
    """单次分析结果"""

    analysis: AIAnalysis
    warnings: list[str] = Field(default_factory=list, description="规则告警，不影响结果保存")
    input_sanitized: bool = Field(default=False, description="用户消息是否经过二次脱敏")
    duration_ms: int = 0


def parse_analysis_json(content: str) -> dict[str, Any]:
    """解析模型输出中的 JSON 对象

    Raises:
        TriageParseError: 不是合法 JSON 或不是对象
    """
    match = _FENCED_JSON.search(content)
    json_str = match.group(1) if match else content.strip()
    try:
        raw = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise TriageParseError(f"Failed to parse JSON response: {e}", raw_content=content) from e
    if not isinstance(raw, dict):
        raise TriageParseError("Analysis must be a JSON object", raw_content=content)
    return raw


def review_analysis(raw: dict[str, Any]) -> list[str]:
    """检查分析是否遵守规则，返回告警列表（空列表表示通过）"""
    warnings = [f"Missing required field: {name}" for name in REQUIRED_FIELDS if name not in raw]

    if raw.get("root_cause_hypothesis") and not raw.get("evidence_refs"):
        warnings.append("Root cause hypothesis requires at least one evidence reference")

    confidence = raw.get("confidence")
    if isinstance(confidence, int | float) and confidence <= LOW_CONFIDENCE_THRESHOLD:
        if not raw.get("additional_info_needed"):
            warnings.append("Low confidence analysis must specify what additional info is needed")
        if raw.get("next_action") not in _LOW_CONFIDENCE_ACTIONS:
            warnings.append(
                "Low confidence analysis should have next_action of request_info or route_engineering"
            )

    if not validate_for_ai(raw).safe:
        warnings.append("Analysis may contain forbidden content (secrets or PII)")

    return warnings


def coerce_analysis_fields(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """宽松处理 confidence / next_action / root_cause_hypothesis 以外的字段

    非法的枚举值、类型不对的文本字段丢弃后回落默认值，
    evidence_refs / fix_plan / test_plan 中校验失败的条目逐条丢弃。
    返回清洗后的字典和对应告警。
    """
    data = {key: value for key, value in raw.items() if value is not None}
    warnings: list[str] = []

    for name, enum_cls in _ENUM_FIELDS.items():
        value = data.get(name)
        if value is not None and (
            not isinstance(value, str) or value not in {m.value for m in enum_cls}
        ):
            data.pop(name)
            warnings.append(f"Ignored invalid {name}: {value!r}")

    for name in _TEXT_FIELDS:
        if name in data and not isinstance(data[name], str):
            data.pop(name)
            warnings.append(f"Ignored non-text {name}")

    for name in _TEXT_LIST_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, list):
            data.pop(name)
            warnings.append(f"Ignored non-list {name}")
            continue
        data[name] = [item for item in value if isinstance(item, str)]

    for name, model in _NESTED_ITEM_MODELS.items():
        items = data.get(name)
        if items is None:
            continue
        if not isinstance(items, list):
            data.pop(name)
            warnings.append(f"Ignored non-list {name}")
            continue
        kept = []
        for index, item in enumerate(items):
            try:
                kept.append(model.model_validate(item))
            except ValidationError:
                warnings.append(f"Dropped invalid {name}[{index}]")
        data[name] = kept

    return data, warnings


def to_ai_analysis(
    raw: dict[str, Any],
    model_name: str,
    generated_at: datetime | None = None,
) -> AIAnalysis:
    """把原始字典校验为 AIAnalysis

    Raises:
        TriageParseError: confidence / next_action / root_cause_hypothesis 缺失或非法
    """
    data, _ = coerce_analysis_fields(raw)
    data.update(
        analysis_id=str(ULID()),
        model_name=model_name,
        generated_at=generated_at or datetime.now(UTC),
    )
    try:
        return AIAnalysis.model_validate(data)
    except ValidationError as e:
        raise TriageParseError(f"Analysis failed validation: {e}", raw_content=json.dumps(raw)) from e


class TriageAnalyzer:
    """AI Triage 协作方

    由 gateway 启动时构造一次，通过依赖注入传给 TriageService。
    """

    def __init__(
        self,
        client: CompletionClient,
        model_alias: str = "main",
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> None:
        self._client = client
        self._model_alias = model_alias
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def analyze(self, triage_input: TriageInput) -> TriageResult:
        """分析一个 Issue

        Raises:
            ProviderError: LLM 调用失败
            TriageParseError: 响应无法解析
        """
        message = build_triage_user_message(triage_input)
        report = validate_for_ai(message)
        if not report.safe:
            log.warning(
                "triage_input_sanitized",
                issue_id=triage_input.issue_id,
                categories=report.categories_found,
            )
            message = sanitize_for_ai(message)

        result = await self._client.complete(
            messages=[
                {"role": "system", "content": TRIAGE_SYSTEM_PROMPT},
                {"role": "user", "content": message},
            ],
            model_alias=self._model_alias,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            json_mode=True,
            metadata={"issue_id": triage_input.issue_id, "environment": triage_input.environment},
        )

        raw = parse_analysis_json(result.content)
        _, coerce_warnings = coerce_analysis_fields(raw)
        warnings = review_analysis(raw) + coerce_warnings
        if warnings:
            log.warning(
                "triage_analysis_review_warnings",
                issue_id=triage_input.issue_id,
                warnings=warnings,
            )

        analysis = to_ai_analysis(raw, model_name=result.model_name or self._model_alias)
        log.info(
            "triage_analysis_completed",
            issue_id=triage_input.issue_id,
            confidence=analysis.confidence,
            next_action=str(analysis.next_action),
            duration_ms=result.duration_ms,
        )
        return TriageResult(
            analysis=analysis,
            warnings=warnings,
            input_sanitized=not report.safe,
            duration_ms=result.duration_ms,
        )
