"""基于OpenAI Chat Completions流式接口的工具调用模型。"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from loopflow import NodeExecutionException, RetryConfig, retry_decorator

from ..exceptions import (
    OpenAIAuthenticationException,
    OpenAIException,
    OpenAIRateLimitException,
    OpenAITimeoutException,
)
from ..models import FunctionCall, Message, Role, ToolCall, ToolInfo
from .base import ToolCallingChatModel
from .config import OpenAIConfig

logger = logging.getLogger("react_agent.llm")

# 只在建立流式连接时重试，且只重试 retryable=True 的异常
DEFAULT_RETRY_CONFIG = RetryConfig(retry_count=2, retry_delay=1.0, backoff_factor=2.0)


class OpenAIChatModel(ToolCallingChatModel):
    """OpenAI聊天模型，输出增量消息块。

    - 工具列表通过 ``with_tools`` 绑定，返回共享底层连接的新实例
    - 助手回复以 ``Message`` 数据块流式产出，工具调用带 ``index`` 便于合并
    - SDK异常转换为 ``OpenAIException`` 系列
    """

    def __init__(
        self,
        config: OpenAIConfig,
        tools: list[ToolInfo] | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.config = config
        self.tools = list(tools or [])
        self._async_client = client

        logger.info(
            f"OpenAI模型初始化完成，模型: {config.model}, 工具数: {len(self.tools)}"
        )

    @property
    def async_client(self) -> AsyncOpenAI:
        """获取异步客户端实例。"""
        if self._async_client is None:
            self._async_client = AsyncOpenAI(**self.config.client_kwargs())
        return self._async_client

    def with_tools(self, tools: list[ToolInfo]) -> "OpenAIChatModel":
        return OpenAIChatModel(self.config, tools=tools, client=self._async_client)

    async def stream(self, messages: list[Message]) -> AsyncIterator[Message]:
        """流式生成助手消息。

        Raises:
            OpenAIException: OpenAI API调用异常
        """
        try:
            completion = await self._create_stream(
                [to_openai_message(message) for message in messages]
            )
        except NodeExecutionException as e:
            # 还原重试层包装的OpenAI异常
            raise e.original_exception from e

        try:
            async for chunk in completion:
                message = to_message_chunk(chunk)
                if message is not None:
                    yield message
        except Exception as e:
            logger.error(f"流式响应异常: {e}")
            raise self._handle_exception(e) from e
        finally:
            await completion.close()

    @retry_decorator(DEFAULT_RETRY_CONFIG, node_name="openai_chat_model")
    async def _create_stream(self, openai_messages: list[dict[str, Any]]) -> Any:
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": openai_messages,
            "temperature": self.config.temperature,
            "stream": True,
        }
        if self.config.max_tokens:
            request["max_tokens"] = self.config.max_tokens
        if self.tools:
            request["tools"] = [to_openai_tool(info) for info in self.tools]

        try:
            return await self.async_client.chat.completions.create(**request)
        except Exception as e:
            logger.error(f"创建流式响应失败: {e}")
            raise self._handle_exception(e) from e

    def _handle_exception(self, error: Exception) -> OpenAIException:
        """处理和转换异常类型。"""
        if isinstance(error, OpenAIException):
            return error

        error_msg = str(error)
        if isinstance(error, openai.AuthenticationError) or "401" in error_msg:
            return OpenAIAuthenticationException(f"认证失败: {error_msg}")
        elif isinstance(error, openai.RateLimitError) or "429" in error_msg:
            return OpenAIRateLimitException(f"速率限制: {error_msg}")
        elif isinstance(error, openai.APITimeoutError) or "timeout" in error_msg.lower():
            return OpenAITimeoutException(
                f"请求超时: {error_msg}", timeout_duration=self.config.timeout
            )
        else:
            return OpenAIException(f"OpenAI API错误: {error_msg}")

    async def aclose(self) -> None:
        """关闭异步客户端连接。"""
        if self._async_client:
            await self._async_client.close()
            self._async_client = None
            logger.info("异步OpenAI客户端连接已关闭")


def to_openai_message(message: Message) -> dict[str, Any]:
    """转换为Chat Completions消息格式"""
    payload: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": call.type,
                "function": {
                    "name": call.function.name,
                    "arguments": call.function.arguments,
                },
            }
            for call in message.tool_calls
        ]
    if message.role is Role.TOOL:
        payload["tool_call_id"] = message.tool_call_id
    return payload


def to_openai_tool(info: ToolInfo) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": info.name,
            "description": info.description,
            "parameters": info.parameters,
        },
    }


def to_message_chunk(chunk: Any) -> Message | None:
    """把一个流式delta转换为消息块；空delta返回None"""
    if not chunk.choices:
        return None
    delta = chunk.choices[0].delta

    tool_calls = [
        ToolCall(
            index=call.index,
            id=call.id or "",
            function=FunctionCall(
                name=(call.function.name if call.function else None) or "",
                arguments=(call.function.arguments if call.function else None) or "",
            ),
        )
        for call in (delta.tool_calls or [])
    ]
    if not delta.content and not tool_calls:
        return None

    return Message(role=Role.ASSISTANT, content=delta.content or "", tool_calls=tool_calls)
