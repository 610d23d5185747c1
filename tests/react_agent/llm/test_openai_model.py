"""测试OpenAI聊天模型，使用Mock避免真实API调用。"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from react_agent.exceptions import (
    OpenAIAuthenticationException,
    OpenAIException,
    OpenAIRateLimitException,
    OpenAITimeoutException,
)
from react_agent.llm import OpenAIChatModel, OpenAIConfig
from react_agent.llm.openai_model import to_message_chunk, to_openai_message
from react_agent.models import FunctionCall, Message, ToolCall, ToolInfo


def delta_chunk(content=None, tool_calls=None):
    """构造一个流式delta数据块"""
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def tool_call_delta(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class FakeAsyncStream:
    """模拟SDK返回的异步流"""

    def __init__(self, chunks, error: Exception | None = None):
        self.chunks = chunks
        self.error = error
        self.close = AsyncMock()

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


async def drain(model: OpenAIChatModel, messages: list[Message]) -> list[Message]:
    return [chunk async for chunk in model.stream(messages)]


class TestOpenAIChatModel:
    """测试OpenAI聊天模型类。"""

    @pytest.fixture
    def config(self) -> OpenAIConfig:
        """测试配置fixture。"""
        return OpenAIConfig(
            api_key="test-key",
            model="gpt-4o-mini",
            base_url=None,
            timeout=30,
            max_retries=3,
            temperature=0.2,
        )

    @pytest.fixture
    def client(self) -> Mock:
        client = Mock()
        client.chat.completions.create = AsyncMock()
        client.close = AsyncMock()
        return client

    @pytest.fixture
    def model(self, config: OpenAIConfig, client: Mock) -> OpenAIChatModel:
        return OpenAIChatModel(config, client=client)

    @patch("react_agent.llm.openai_model.AsyncOpenAI")
    def test_async_client_property(self, mock_async_openai, config: OpenAIConfig):
        """测试异步客户端属性。"""
        mock_instance = Mock()
        mock_async_openai.return_value = mock_instance
        model = OpenAIChatModel(config)

        # 第一次访问应该创建客户端
        assert model.async_client is mock_instance
        mock_async_openai.assert_called_once_with(
            api_key="test-key",
            timeout=30,
            max_retries=3,
        )

        # 第二次访问应该返回同一个实例
        assert model.async_client is mock_instance
        assert mock_async_openai.call_count == 1

    @patch("react_agent.llm.openai_model.AsyncOpenAI")
    def test_custom_base_url(self, mock_async_openai, config: OpenAIConfig):
        config.base_url = "http://localhost:8000/v1"

        OpenAIChatModel(config).async_client

        assert mock_async_openai.call_args.kwargs["base_url"] == "http://localhost:8000/v1"

    def test_with_tools_shares_client(self, model: OpenAIChatModel, client: Mock):
        """绑定工具返回新实例，原实例不变"""
        bound = model.with_tools([ToolInfo(name="search")])

        assert bound is not model
        assert bound.async_client is client
        assert [info.name for info in bound.tools] == ["search"]
        assert model.tools == []

    @pytest.mark.asyncio
    async def test_stream_text(self, model: OpenAIChatModel, client: Mock):
        """测试流式文本回复。"""
        stream = FakeAsyncStream(
            [delta_chunk("Hel"), delta_chunk(None), delta_chunk("lo")]
        )
        client.chat.completions.create.return_value = stream

        chunks = await drain(model, [Message.user("hi")])

        assert [c.content for c in chunks] == ["Hel", "lo"]
        stream.close.assert_awaited_once()

        request = client.chat.completions.create.call_args.kwargs
        assert request == {
            "model": "gpt-4o-mini",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0.2,
            "stream": True,
        }

    @pytest.mark.asyncio
    async def test_request_with_tools_and_max_tokens(
        self, config: OpenAIConfig, client: Mock
    ):
        config.max_tokens = 128
        info = ToolInfo(
            name="search",
            description="Search the web",
            parameters={"type": "object", "properties": {"q": {"type": "string"}}},
        )
        model = OpenAIChatModel(config, client=client).with_tools([info])
        client.chat.completions.create.return_value = FakeAsyncStream([])

        assert await drain(model, [Message.user("hi")]) == []

        request = client.chat.completions.create.call_args.kwargs
        assert request["max_tokens"] == 128
        assert request["tools"] == [
            {
                "type": "function",
                "function": {
                    "name": "search",
                    "description": "Search the web",
                    "parameters": info.parameters,
                },
            }
        ]

    @pytest.mark.asyncio
    async def test_stream_tool_call_deltas(self, model: OpenAIChatModel, client: Mock):
        """工具调用增量保留index，合并后得到完整调用"""
        client.chat.completions.create.return_value = FakeAsyncStream(
            [
                delta_chunk(tool_calls=[tool_call_delta(0, "call_1", "search", "")]),
                delta_chunk(tool_calls=[tool_call_delta(0, arguments='{"q": ')]),
                delta_chunk(tool_calls=[tool_call_delta(0, arguments='"x"}')]),
            ]
        )

        chunks = await drain(model, [Message.user("find x")])

        assert [c.tool_calls[0].index for c in chunks] == [0, 0, 0]
        assert chunks[0].tool_calls[0].id == "call_1"
        assert chunks[2].tool_calls[0].function.arguments == '"x"}'

    @pytest.mark.asyncio
    async def test_generate_concatenates(self, model: OpenAIChatModel, client: Mock):
        client.chat.completions.create.return_value = FakeAsyncStream(
            [
                delta_chunk("Let me search"),
                delta_chunk(tool_calls=[tool_call_delta(0, "call_1", "search", "")]),
                delta_chunk(tool_calls=[tool_call_delta(0, arguments='{"q": "x"}')]),
            ]
        )

        message = await model.generate([Message.user("find x")])

        assert message.content == "Let me search"
        assert message.tool_calls == [
            ToolCall(index=0, id="call_1", function=FunctionCall(name="search", arguments='{"q": "x"}'))
        ]

    @pytest.mark.asyncio
    async def test_authentication_error_not_retried(
        self, model: OpenAIChatModel, client: Mock
    ):
        """测试认证错误不重试。"""
        client.chat.completions.create.side_effect = Exception("Error code: 401 - invalid key")

        with pytest.raises(OpenAIAuthenticationException):
            await drain(model, [Message.user("hi")])

        assert client.chat.completions.create.call_count == 1

    @pytest.mark.asyncio
    @patch("loopflow.core.asyncio.sleep", new_callable=AsyncMock)
    async def test_rate_limit_retried(self, mock_sleep, model: OpenAIChatModel, client: Mock):
        """测试速率限制会重试。"""
        client.chat.completions.create.side_effect = [
            Exception("Error code: 429 - rate limit"),
            FakeAsyncStream([delta_chunk("ok")]),
        ]

        chunks = await drain(model, [Message.user("hi")])

        assert [c.content for c in chunks] == ["ok"]
        assert client.chat.completions.create.call_count == 2
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    @patch("loopflow.core.asyncio.sleep", new_callable=AsyncMock)
    async def test_retry_exhausted(self, mock_sleep, model: OpenAIChatModel, client: Mock):
        """重试耗尽后抛出原始的OpenAI异常"""
        client.chat.completions.create.side_effect = Exception("429 Too Many Requests")

        with pytest.raises(OpenAIRateLimitException):
            await drain(model, [Message.user("hi")])

        assert client.chat.completions.create.call_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_mid_stream_error(self, model: OpenAIChatModel, client: Mock):
        """流式读取中途出错时转换异常并关闭流"""
        stream = FakeAsyncStream(
            [delta_chunk("partial")], error=RuntimeError("connection reset")
        )
        client.chat.completions.create.return_value = stream
        received = []

        with pytest.raises(OpenAIException, match="connection reset"):
            async for chunk in model.stream([Message.user("hi")]):
                received.append(chunk)

        assert [c.content for c in received] == ["partial"]
        stream.close.assert_awaited_once()

    def test_handle_exception(self, model: OpenAIChatModel):
        """测试异常转换。"""
        timeout = model._handle_exception(Exception("Request timeout"))
        assert isinstance(timeout, OpenAITimeoutException)
        assert timeout.timeout_duration == 30
        assert timeout.retryable is True

        other = model._handle_exception(ValueError("bad request"))
        assert type(other) is OpenAIException
        assert other.retryable is False

        existing = OpenAIRateLimitException("slow down")
        assert model._handle_exception(existing) is existing

    @pytest.mark.asyncio
    async def test_aclose(self, model: OpenAIChatModel, client: Mock):
        """测试关闭客户端。"""
        await model.aclose()

        client.close.assert_awaited_once()
        assert model._async_client is None


class TestMessageConversion:
    """测试消息格式转换。"""

    def test_assistant_tool_calls(self):
        message = Message.assistant(
            tool_calls=[ToolCall(id="call_1", function=FunctionCall(name="search", arguments="{}"))]
        )

        assert to_openai_message(message) == {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "search", "arguments": "{}"},
                }
            ],
        }

    def test_tool_result(self):
        message = Message.tool("42", tool_call_id="call_1", name="calc")

        assert to_openai_message(message) == {
            "role": "tool",
            "content": "42",
            "tool_call_id": "call_1",
        }

    def test_empty_chunks_dropped(self):
        assert to_message_chunk(SimpleNamespace(choices=[])) is None
        assert to_message_chunk(delta_chunk(content="", tool_calls=[])) is None

    def test_tool_call_delta_without_function(self):
        chunk = delta_chunk(
            tool_calls=[SimpleNamespace(index=1, id="call_2", function=None)]
        )

        message = to_message_chunk(chunk)

        assert message.tool_calls == [ToolCall(index=1, id="call_2")]


class TestOpenAIConfig:
    """测试配置校验。"""

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"api_key": ""}, "API key"),
            ({"temperature": 2.5}, "temperature"),
            ({"timeout": 0}, "timeout"),
            ({"max_retries": -1}, "max_retries"),
        ],
    )
    def test_invalid_values(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            OpenAIConfig(**{"api_key": "sk-x", **overrides})

    def test_client_kwargs(self):
        config = OpenAIConfig(api_key="sk-x", timeout=10, max_retries=0)

        assert config.client_kwargs() == {"api_key": "sk-x", "timeout": 10, "max_retries": 0}

        config.base_url = "http://localhost:8000/v1"
        assert config.client_kwargs()["base_url"] == "http://localhost:8000/v1"
