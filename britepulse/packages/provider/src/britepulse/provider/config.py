"""ProviderConfig -- Provider 配置加载

从环境变量加载配置，不硬编码 provider/模型名。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

_DEFAULT_TIMEOUT_S = 30


class ProviderConfig(BaseModel):
    """Provider 包配置 -- 从环境变量加载

    环境变量:
        LITELLM_PROXY_URL: Proxy 地址（默认 http://localhost:4000）
        LITELLM_PROXY_KEY: Proxy 访问密钥
        BRITEPULSE_LLM_MODE: LLM 运行模式（litellm/echo）
        BRITEPULSE_TRIAGE_MODEL: Triage 使用的 Proxy model_name
        BRITEPULSE_LLM_TIMEOUT_S: 调用超时（秒，默认 30）
    """

    proxy_base_url: str = Field(
        default="http://localhost:4000",
        description="LiteLLM Proxy 基础 URL",
    )
    proxy_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy 访问密钥（不是 LLM provider API key）",
    )
    llm_mode: Literal["litellm", "echo"] = Field(
        default="echo",
        description="LLM 运行模式：litellm / echo",
    )
    triage_model: str = Field(
        default="main",
        description="Triage 调用的 Proxy model_name",
    )
    timeout_s: int = Field(
        default=_DEFAULT_TIMEOUT_S,
        ge=1,
        description="LLM 调用超时（秒）",
    )


def load_provider_config() -> ProviderConfig:
    """从环境变量加载 Provider 配置

    非法的超时配置只记录 warning 并回退默认值，不阻塞启动。
    """
    kwargs: dict = {}

    if val := os.environ.get("LITELLM_PROXY_URL"):
        kwargs["proxy_base_url"] = val

    if val := os.environ.get("LITELLM_PROXY_KEY"):
        kwargs["proxy_api_key"] = SecretStr(val)

    if val := os.environ.get("BRITEPULSE_LLM_MODE"):
        kwargs["llm_mode"] = val

    if val := os.environ.get("BRITEPULSE_TRIAGE_MODEL"):
        kwargs["triage_model"] = val

    if val := os.environ.get("BRITEPULSE_LLM_TIMEOUT_S"):
        try:
            kwargs["timeout_s"] = int(val)
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="BRITEPULSE_LLM_TIMEOUT_S",
                value=val,
                fallback=_DEFAULT_TIMEOUT_S,
            )

    return ProviderConfig(**kwargs)
