"""EchoTriageAdapter -- Echo 模式 messages 接口适配

不调用任何模型，按 complete(messages) -> ModelCallResult 接口返回一份
低置信度的占位分析 JSON，便于本地开发和测试跑通完整 triage 流程。
"""

import asyncio
import json
import re
import time

from .models import ModelCallResult, TokenUsage

_SEVERITY_LINE = re.compile(r"\*\*Current Severity:\*\*\s*(P[0-3])")
_TITLE_LINE = re.compile(r"\*\*Title:\*\*\s*(.+)")


class EchoTriageAdapter:
    """Echo 模式：回显证据摘要，置信度固定为低"""

    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "echo",
        **kwargs,
    ) -> ModelCallResult:
        """返回占位分析

        Args:
            messages: 消息列表
            model_alias: 模型别名
            **kwargs: 忽略
        """
        start_time = time.monotonic()
        user_content = self._extract_last_user_content(messages)

        # 模拟少量延迟
        await asyncio.sleep(0.01)

        response_text = json.dumps(self._build_analysis(user_content), ensure_ascii=False)

        prompt_tokens = len(user_content.split())
        completion_tokens = len(response_text.split())
        duration_ms = int((time.monotonic() - start_time) * 1000)

        return ModelCallResult(
            content=response_text,
            model_alias=model_alias,
            model_name="echo",
            provider="echo",
            duration_ms=duration_ms,
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    @staticmethod
    def _build_analysis(user_content: str) -> dict:
        severity_match = _SEVERITY_LINE.search(user_content)
        title_match = _TITLE_LINE.search(user_content)
        title = title_match.group(1).strip() if title_match else "(untitled)"
        return {
            "classification": "bug",
            "severity": severity_match.group(1) if severity_match else "P3",
            "severity_rationale": "Echo mode keeps the current severity",
            "impact_summary": f"Echo analysis for: {title}",
            "evidence_refs": [
                {
                    "type": "event",
                    "excerpt": title,
                    "relevance": "Issue title supplied with the triage request",
                }
            ],
            "root_cause_hypothesis": "Not determined in echo mode",
            "fix_plan": [],
            "test_plan": [],
            "rollout_plan": "",
            "rollback_plan": "",
            "confidence": 0.1,
            "assumptions": [],
            "limitations": ["No language model was consulted"],
            "next_action": "request_info",
            "next_action_rationale": "Echo mode cannot analyze evidence",
            "additional_info_needed": ["Run triage with a configured LiteLLM proxy"],
        }

    @staticmethod
    def _extract_last_user_content(messages: list[dict[str, str]]) -> str:
        """提取最后一条 user message 的 content，无 user 消息时返回 "(empty)" """
        for msg in reversed(messages):
            if msg.get("role") == "user":
                return msg.get("content", "")

        if messages:
            return messages[-1].get("content", "(empty)")
        return "(empty)"
