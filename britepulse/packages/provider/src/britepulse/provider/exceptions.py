"""Provider 异常体系"""


class ProviderError(Exception):
    """Provider 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class ProxyUnreachableError(ProviderError):
    """LiteLLM Proxy 不可达（连接失败、超时、DNS 解析失败等）"""

    def __init__(self, proxy_url: str, original_error: Exception) -> None:
        super().__init__(
            f"LiteLLM Proxy 不可达: {proxy_url} -- {original_error}",
            recoverable=True,
        )
        self.proxy_url = proxy_url
        self.original_error = original_error


class TriageParseError(ProviderError):
    """模型响应无法解析为分析结果

    重试通常得到同类输出，因此不可恢复。
    """

    def __init__(self, message: str, raw_content: str = "") -> None:
        super().__init__(message, recoverable=False)
        self.raw_content = raw_content
