"""LiteLLMClient -- Triage 模型调用

所有请求经 LiteLLM Proxy 转发（litellm.acompletion + api_base），
BritePulse 不直接持有任何 LLM provider 的密钥。
Triage 要求模型输出 JSON，json_mode=True 时附带 response_format。
"""

import time
from typing import Any

import httpx
import structlog
from litellm import acompletion

from .exceptions import ProviderError, ProxyUnreachableError
from .models import ModelCallResult, TokenUsage

log = structlog.get_logger()

HEALTH_CHECK_TIMEOUT_S = 5
HEALTH_CHECK_PATH = "/health/liveliness"

# 视为 Proxy 不可达的异常；LiteLLM 自己的连接异常按类名识别
_UNREACHABLE_ERRORS = (
    ConnectionError,
    TimeoutError,
    httpx.ConnectError,
    httpx.TimeoutException,
)
_UNREACHABLE_LITELLM_ERRORS = frozenset({"APIConnectionError", "APITimeoutError"})


def _proxy_unreachable(e: Exception) -> bool:
    return isinstance(e, _UNREACHABLE_ERRORS) or type(e).__name__ in _UNREACHABLE_LITELLM_ERRORS


def _usage_of(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


def _provider_of(response: Any) -> str:
    hidden = getattr(response, "_hidden_params", None)
    if not isinstance(hidden, dict):
        return ""
    return hidden.get("custom_llm_provider") or ""


class LiteLLMClient:
    """LiteLLM Proxy 客户端

    proxy_api_key 是 Proxy 的访问密钥（LITELLM_PROXY_KEY），不是上游 provider 的 key。
    """

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        timeout_s: int = 30,
    ) -> None:
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._timeout_s = timeout_s

    def _call_kwargs(
        self,
        messages: list[dict[str, str]],
        model_alias: str,
        temperature: float,
        max_tokens: int | None,
        json_mode: bool,
        metadata: dict[str, str] | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model_alias,
            "messages": messages,
            "api_base": self._proxy_base_url,
            "api_key": self._proxy_api_key or "no-key",
            "temperature": temperature,
            "timeout": self._timeout_s,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if metadata:
            # Proxy 侧按 issue_id 检索调用记录
            kwargs["metadata"] = metadata
        return kwargs

    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "main",
        temperature: float = 0.3,
        max_tokens: int | None = None,
        json_mode: bool = False,
        metadata: dict[str, str] | None = None,
    ) -> ModelCallResult:
        """发送一次 chat completion

        Raises:
            ProxyUnreachableError: Proxy 连接失败或超时
            ProviderError: Proxy 返回错误（模型不可用、配额耗尽等）
        """
        call_kwargs = self._call_kwargs(
            messages, model_alias, temperature, max_tokens, json_mode, metadata
        )
        start = time.monotonic()
        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            log.error(
                "triage_model_call_failed",
                model_alias=model_alias,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            if _proxy_unreachable(e):
                raise ProxyUnreachableError(self._proxy_base_url, e) from e
            raise ProviderError(f"模型调用失败: {e}") from e

        result = ModelCallResult(
            content=response.choices[0].message.content or "",
            model_alias=model_alias,
            model_name=getattr(response, "model", "") or "",
            provider=_provider_of(response),
            duration_ms=int((time.monotonic() - start) * 1000),
            token_usage=_usage_of(response),
        )
        log.info(
            "triage_model_call_completed",
            model_alias=model_alias,
            model_name=result.model_name,
            provider=result.provider,
            total_tokens=result.token_usage.total_tokens,
            duration_ms=result.duration_ms,
        )
        return result

    async def health_check(self) -> bool:
        """GET {proxy}/health/liveliness；不抛异常，不可达返回 False"""
        url = f"{self._proxy_base_url}{HEALTH_CHECK_PATH}"
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
        except httpx.HTTPError as e:
            log.debug("litellm_proxy_health_failed", url=url, error=str(e))
            return False
        return resp.status_code == 200
