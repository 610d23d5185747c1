"""智能代理相关异常类定义。"""

from typing import Any


class AgentException(Exception):
    """智能代理基础异常类。"""

    def __init__(
        self, message: str, agent_type: str | None = None, **kwargs: Any
    ) -> None:
        self.agent_type = agent_type
        self.context = kwargs
        super().__init__(message)


class OpenAIException(AgentException):
    """OpenAI API相关异常基类。"""

    retryable = False  # 默认不重试

    def __init__(
        self, message: str, error_code: str | None = None, **kwargs: Any
    ) -> None:
        self.error_code = error_code
        super().__init__(message, agent_type="openai", **kwargs)


class OpenAIAuthenticationException(OpenAIException):
    """OpenAI认证异常。"""

    retryable = False

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, error_code="authentication_failed", **kwargs)


class OpenAIRateLimitException(OpenAIException):
    """OpenAI速率限制异常。"""

    retryable = True

    def __init__(
        self, message: str, retry_after: int | None = None, **kwargs: Any
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, error_code="rate_limit_exceeded", **kwargs)


class OpenAITimeoutException(OpenAIException):
    """OpenAI请求超时异常。"""

    retryable = True

    def __init__(
        self, message: str, timeout_duration: float | None = None, **kwargs: Any
    ) -> None:
        self.timeout_duration = timeout_duration
        super().__init__(message, error_code="request_timeout", **kwargs)


class ReActException(AgentException):
    """ReAct循环异常。"""

    def __init__(self, message: str, step: str | None = None, **kwargs: Any) -> None:
        self.step = step
        super().__init__(message, agent_type="react", **kwargs)


class ExceedMaxIterationsError(ReActException):
    """模型调用次数超过迭代上限，本次运行终止。"""

    def __init__(
        self,
        message: str = "exceeds max iterations",
        max_iterations: int | None = None,
        **kwargs: Any,
    ) -> None:
        self.max_iterations = max_iterations
        super().__init__(message, step="ChatModel", **kwargs)


class ToolCatalogGenerationError(ReActException):
    """生成工具列表或将其绑定到模型失败（运行开始前）。"""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, step="setup", **kwargs)


class ToolExecutionException(AgentException):
    """工具执行异常。"""

    def __init__(
        self,
        message: str,
        tool_name: str | None = None,
        call_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.tool_name = tool_name
        self.call_id = call_id
        super().__init__(message, agent_type="tool", **kwargs)


class ToolNotFoundError(ToolExecutionException):
    """模型请求了未注册的工具。"""

    pass


class AgentConfigurationError(AgentException):
    """代理配置错误。"""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, agent_type="react_agent", **kwargs)
