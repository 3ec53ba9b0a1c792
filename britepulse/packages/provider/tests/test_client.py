"""LiteLLMClient 单元测试

Mock litellm.acompletion()，验证 complete() 返回 ModelCallResult、
health_check() 返回 bool、超时处理、ProxyUnreachableError 抛出。
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from britepulse.provider.client import LiteLLMClient
from britepulse.provider.exceptions import ProviderError, ProxyUnreachableError
from britepulse.provider.models import ModelCallResult


@pytest.fixture
def client():
    """创建 LiteLLMClient 实例"""
    return LiteLLMClient(
        proxy_base_url="http://localhost:4000/",
        proxy_api_key="proxy-test-key",
        timeout_s=30,
    )


def _make_mock_litellm_response(
    content: str | None = '{"classification": "bug"}',
    model: str = "gpt-4o-mini",
    prompt_tokens: int = 10,
    completion_tokens: int = 20,
    total_tokens: int = 30,
):
    """构造 Mock LiteLLM acompletion 返回"""
    response = MagicMock()
    response.model = model

    choice = MagicMock()
    choice.message.content = content
    response.choices = [choice]

    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    usage.total_tokens = total_tokens
    response.usage = usage

    response._hidden_params = {"custom_llm_provider": "openai"}
    return response


class TestLiteLLMClientComplete:
    """complete() 方法测试"""

    @patch("britepulse.provider.client.acompletion")
    async def test_successful_call(self, mock_acompletion, client, sample_messages):
        """成功调用返回完整 ModelCallResult"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        result = await client.complete(messages=sample_messages, model_alias="main")

        assert isinstance(result, ModelCallResult)
        assert result.content == '{"classification": "bug"}'
        assert result.model_alias == "main"
        assert result.model_name == "gpt-4o-mini"
        assert result.provider == "openai"
        assert result.duration_ms >= 0

    @patch("britepulse.provider.client.acompletion")
    async def test_call_kwargs(self, mock_acompletion, client, sample_messages):
        """model_alias、api_base、max_tokens 正确传递给 litellm"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(messages=sample_messages, model_alias="triage", max_tokens=512)

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "triage"
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["api_key"] == "proxy-test-key"
        assert kwargs["max_tokens"] == 512
        assert kwargs["timeout"] == 30

    @patch("britepulse.provider.client.acompletion")
    async def test_max_tokens_omitted_by_default(self, mock_acompletion, client, sample_messages):
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(messages=sample_messages)

        kwargs = mock_acompletion.call_args.kwargs
        assert "max_tokens" not in kwargs
        assert "response_format" not in kwargs
        assert "metadata" not in kwargs

    @patch("britepulse.provider.client.acompletion")
    async def test_json_mode_and_metadata(self, mock_acompletion, client, sample_messages):
        """Triage 调用要求 JSON 输出并带 issue_id 元数据"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(
            messages=sample_messages,
            json_mode=True,
            metadata={"issue_id": "01JISSUE"},
        )

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["metadata"] == {"issue_id": "01JISSUE"}

    @patch("britepulse.provider.client.acompletion")
    async def test_empty_content(self, mock_acompletion, client, sample_messages):
        mock_acompletion.return_value = _make_mock_litellm_response(content=None)

        result = await client.complete(messages=sample_messages)
        assert result.content == ""

    @patch("britepulse.provider.client.acompletion")
    async def test_token_usage_parsed(self, mock_acompletion, client, sample_messages):
        """Token 使用数据正确解析"""
        mock_acompletion.return_value = _make_mock_litellm_response(
            prompt_tokens=50, completion_tokens=100, total_tokens=150
        )

        result = await client.complete(messages=sample_messages)

        assert result.token_usage.prompt_tokens == 50
        assert result.token_usage.completion_tokens == 100
        assert result.token_usage.total_tokens == 150

    @patch("britepulse.provider.client.acompletion")
    async def test_connection_error_raises_proxy_unreachable(
        self, mock_acompletion, client, sample_messages
    ):
        """连接错误抛出 ProxyUnreachableError"""
        mock_acompletion.side_effect = ConnectionError("Connection refused")

        with pytest.raises(ProxyUnreachableError) as exc_info:
            await client.complete(messages=sample_messages)
        assert "localhost:4000" in str(exc_info.value)
        assert exc_info.value.recoverable is True

    @patch("britepulse.provider.client.acompletion")
    async def test_timeout_raises_proxy_unreachable(
        self, mock_acompletion, client, sample_messages
    ):
        """超时抛出 ProxyUnreachableError"""
        mock_acompletion.side_effect = TimeoutError("timeout")

        with pytest.raises(ProxyUnreachableError):
            await client.complete(messages=sample_messages)

    @patch("britepulse.provider.client.acompletion")
    async def test_other_error_raises_provider_error(
        self, mock_acompletion, client, sample_messages
    ):
        """非连接类错误包装为 ProviderError"""
        mock_acompletion.side_effect = RuntimeError("model not found")

        with pytest.raises(ProviderError) as exc_info:
            await client.complete(messages=sample_messages)
        assert not isinstance(exc_info.value, ProxyUnreachableError)
        assert "model not found" in str(exc_info.value)


class TestLiteLLMClientHealthCheck:
    """health_check() 方法测试"""

    @patch("httpx.AsyncClient.get")
    async def test_healthy_proxy(self, mock_get, client):
        """Proxy 可达时返回 True"""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_get.return_value = mock_response

        assert await client.health_check() is True
        assert mock_get.call_args.args[0] == "http://localhost:4000/health/liveliness"

    @patch("httpx.AsyncClient.get")
    async def test_unreachable_proxy(self, mock_get, client):
        """Proxy 不可达时返回 False"""
        mock_get.side_effect = httpx.ConnectError("Connection refused")

        assert await client.health_check() is False

    @patch("httpx.AsyncClient.get")
    async def test_server_error(self, mock_get, client):
        """服务器错误返回 False"""
        mock_response = MagicMock()
        mock_response.status_code = 500
        mock_get.return_value = mock_response

        assert await client.health_check() is False
