"""Redactor -- 敏感数据脱敏

对任意嵌套的 payload（dict / list / 标量）按脱敏配置档替换 PII 与密钥。

行为约定：
1. 纯函数，不修改输入；输出中被访问过的容器都是新拷贝。
2. 使用显式工作栈遍历，每个节点携带深度；深度 >= max_depth 的值原样透传。
   这是有界开销策略，不是安全保证：调用方不能假定深层数据已被脱敏。
3. 类别按固定顺序匹配，替换为固定 token（如 [REDACTED_EMAIL]），token 本身不会再次命中。
4. 幂等：对已脱敏文本再次脱敏不产生新的匹配。
5. 非字符串标量与未知类型按"无匹配"处理，不抛异常。

validate_for_ai / sanitize_for_ai 是交给外部 AI 协作方之前的最后一道关卡：
在整串文本上检测残留 PII（包括格式不规则的 bearer token 等），不安全时执行更严格的整串脱敏。
"""

import json
import re
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from .config import REDACTION_MAX_DEPTH
from .models.enums import RedactionProfile

# 单段文本最多重复脱敏轮数（直到没有新匹配）
_MAX_PASSES = 3


class RedactionCategory(StrEnum):
    """脱敏类别，声明顺序即匹配顺序"""

    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    SECRET = "secret"
    ACCOUNT_ID = "account_id"
    SSN = "ssn"
    CREDIT_CARD = "credit_card"
    IP_ADDRESS = "ip_address"


_STREET_SUFFIX = (
    r"street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln"
    r"|way|court|ct|place|pl|circle|cir"
)

PATTERNS: dict[RedactionCategory, re.Pattern[str]] = {
    RedactionCategory.EMAIL: re.compile(
        r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"
    ),
    RedactionCategory.PHONE: re.compile(
        r"(?<![\w-])(?:\+?1[-.\s]?)?(?:\(\d{3}\)|\d{3})[-.\s]?\d{3}[-.\s]?\d{4}(?![\w-])"
    ),
    RedactionCategory.ADDRESS: re.compile(
        rf"\b\d{{1,6}}\s+(?:[A-Z][\w.]*\s+){{1,4}}(?i:{_STREET_SUFFIX})\b\.?"
    ),
    RedactionCategory.SECRET: re.compile(
        r"\b(?:api[_-]?key|access[_-]?token|token|password|secret|credential|bearer|authorization)"
        r"\b['\"]?\s*[=:]\s*['\"]?[\w\-.]{16,}['\"]?"
        r"|\bbearer\s+[\w\-.~+/]{16,}=*",
        re.IGNORECASE,
    ),
    RedactionCategory.ACCOUNT_ID: re.compile(r"\b[A-Z]{2,4}[-_]?\d{6,12}\b"),
    RedactionCategory.SSN: re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b"),
    RedactionCategory.CREDIT_CARD: re.compile(
        r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"
    ),
    RedactionCategory.IP_ADDRESS: re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
}

TOKENS: dict[RedactionCategory, str] = {
    RedactionCategory.EMAIL: "[REDACTED_EMAIL]",
    RedactionCategory.PHONE: "[REDACTED_PHONE]",
    RedactionCategory.ADDRESS: "[REDACTED_ADDRESS]",
    RedactionCategory.SECRET: "[REDACTED_SECRET]",
    RedactionCategory.ACCOUNT_ID: "[REDACTED_ID]",
    RedactionCategory.SSN: "[REDACTED_SSN]",
    RedactionCategory.CREDIT_CARD: "[REDACTED_CARD]",
    RedactionCategory.IP_ADDRESS: "[REDACTED_IP]",
}

ALL_CATEGORIES: list[RedactionCategory] = list(RedactionCategory)

PROFILE_CATEGORIES: dict[RedactionProfile, list[RedactionCategory]] = {
    RedactionProfile.STRICT: ALL_CATEGORIES,
    RedactionProfile.STANDARD: [
        c for c in ALL_CATEGORIES if c is not RedactionCategory.IP_ADDRESS
    ],
    RedactionProfile.RELAXED: [
        RedactionCategory.SECRET,
        RedactionCategory.SSN,
        RedactionCategory.CREDIT_CARD,
    ],
}

# 残留密钥形态：常规 secret 规则之外，AI 关卡额外检测
RESIDUAL_SECRET_PATTERNS: dict[str, re.Pattern[str]] = {
    "private_key": re.compile(
        r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
        re.DOTALL,
    ),
    "bearer_token": re.compile(r"\bbearer\s+[A-Za-z0-9._~+/-]{20,}=*", re.IGNORECASE),
    "jwt": re.compile(r"\beyJ[\w-]{8,}\.[\w-]{8,}\.[\w-]{8,}"),
    "provider_key": re.compile(
        r"\b(?:sk|pk|rk)[-_](?:live[-_]|test[-_]|proj[-_]|ant[-_])?[A-Za-z0-9_-]{16,}"
        r"|\bAKIA[0-9A-Z]{16}\b"
        r"|\bgh[pousr]_[A-Za-z0-9]{36,}\b"
    ),
    "credential_assignment": re.compile(
        r"\b(api[_-]?key|password|passwd|pwd|secret|token|authorization)\b"
        r"['\"]?\s*[:=]\s*(?!['\"]?\[REDACTED)\S+",
        re.IGNORECASE,
    ),
}

_RESIDUAL_TOKEN = "[REDACTED_SECRET]"


class RedactionResult(BaseModel):
    """脱敏结果"""

    data: Any = Field(description="脱敏后的数据")
    redactions_applied: int = Field(default=0, description="替换次数")
    categories_found: list[RedactionCategory] = Field(
        default_factory=list,
        description="命中的类别（按类别顺序）",
    )


class SafetyReport(BaseModel):
    """AI 输入安全检查结果"""

    safe: bool
    categories_found: list[str] = Field(default_factory=list)


def _apply_categories(
    text: str,
    categories: list[RedactionCategory],
    hits: dict[RedactionCategory, int],
) -> str:
    """按类别顺序替换，重复到没有新匹配（最多 _MAX_PASSES 轮）"""
    for _ in range(_MAX_PASSES):
        changed = False
        for category in categories:
            text, n = PATTERNS[category].subn(TOKENS[category], text)
            if n:
                hits[category] = hits.get(category, 0) + n
                changed = True
        if not changed:
            break
    return text


def _ordered_hits(hits: dict[RedactionCategory, int]) -> list[RedactionCategory]:
    return [c for c in ALL_CATEGORIES if hits.get(c)]


def redact_text(
    text: str,
    profile: RedactionProfile | str = RedactionProfile.STANDARD,
) -> RedactionResult:
    """脱敏单段文本，非字符串原样返回"""
    if not isinstance(text, str) or not text:
        return RedactionResult(data=text)
    hits: dict[RedactionCategory, int] = {}
    result = _apply_categories(text, PROFILE_CATEGORIES[RedactionProfile(profile)], hits)
    return RedactionResult(
        data=result,
        redactions_applied=sum(hits.values()),
        categories_found=_ordered_hits(hits),
    )


def redact(
    payload: Any,
    profile: RedactionProfile | str = RedactionProfile.STANDARD,
    max_depth: int = REDACTION_MAX_DEPTH,
) -> RedactionResult:
    """脱敏任意嵌套数据

    根节点深度为 0；深度 < max_depth 的字符串才会被脱敏，
    更深的节点（含整棵子树）原样透传。

    Args:
        payload: 任意 dict / list / 标量组成的树
        profile: 脱敏配置档
        max_depth: 最大遍历深度

    Returns:
        RedactionResult，data 为新树，输入不被修改
    """
    categories = PROFILE_CATEGORIES[RedactionProfile(profile)]
    hits: dict[RedactionCategory, int] = {}

    holder: list[Any] = [payload]
    # (父容器, 键, 值, 深度)
    stack: list[tuple[Any, Any, Any, int]] = [(holder, 0, payload, 0)]
    while stack:
        parent, key, value, depth = stack.pop()
        if depth >= max_depth:
            continue
        if isinstance(value, str):
            parent[key] = _apply_categories(value, categories, hits)
        elif isinstance(value, Mapping):
            copied = dict(value)
            parent[key] = copied
            for k, v in copied.items():
                stack.append((copied, k, v, depth + 1))
        elif isinstance(value, list | tuple):
            copied_list = list(value)
            parent[key] = copied_list
            for i, v in enumerate(copied_list):
                stack.append((copied_list, i, v, depth + 1))

    return RedactionResult(
        data=holder[0],
        redactions_applied=sum(hits.values()),
        categories_found=_ordered_hits(hits),
    )


def _flatten(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, BaseModel):
        return content.model_dump_json()
    return json.dumps(content, ensure_ascii=False, default=str)


def validate_for_ai(content: Any) -> SafetyReport:
    """检查内容能否交给外部 AI 协作方

    对扁平化后的整串文本运行全部类别和残留密钥规则。
    """
    text = _flatten(content)
    found: list[str] = [
        str(category) for category in ALL_CATEGORIES if PATTERNS[category].search(text)
    ]
    found.extend(
        name for name, pattern in RESIDUAL_SECRET_PATTERNS.items() if pattern.search(text)
    )
    return SafetyReport(safe=not found, categories_found=found)


def sanitize_for_ai(content: Any) -> str:
    """更严格的整串脱敏：残留密钥规则 + 全部类别"""
    text = _flatten(content)
    for _ in range(_MAX_PASSES):
        before = text
        for name, pattern in RESIDUAL_SECRET_PATTERNS.items():
            if name == "credential_assignment":
                text = pattern.sub(r"\1=[REDACTED]", text)
            else:
                text = pattern.sub(_RESIDUAL_TOKEN, text)
        text = _apply_categories(text, ALL_CATEGORIES, {})
        if text == before:
            break
    return text
