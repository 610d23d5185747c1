"""OpenAI聊天模型的连接与请求参数。

环境变量、配置文件等来源由 ``react_agent.config.LLMConfig`` 处理，
这里只描述模型实例实际使用的值。
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class OpenAIConfig:
    """``OpenAIChatModel`` 使用的参数，创建时校验取值范围。"""

    api_key: str
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    """OpenAI兼容服务的地址，为空时使用官方API"""
    timeout: int = 30
    max_retries: int = 3
    """SDK内部的重试次数，与打开流时的重试相互独立"""
    temperature: float = 0.7
    max_tokens: int | None = None

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("OpenAI API key must not be empty")
        if not 0 <= self.temperature <= 2:
            raise ValueError(f"temperature must be within [0, 2], got {self.temperature}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")

    def client_kwargs(self) -> dict[str, Any]:
        """``AsyncOpenAI`` 的构造参数"""
        kwargs: dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return kwargs
