"""
测试替身：按脚本回复的聊天模型与记录调用的工具
"""

import asyncio
from collections.abc import AsyncIterator, Callable

from react_agent.exceptions import ToolExecutionException
from react_agent.llm.base import ToolCallingChatModel
from react_agent.models import FunctionCall, Message, ToolCall, ToolInfo
from react_agent.tools.base import BaseTool

Reply = list[Message]


def text_reply(*parts: str) -> Reply:
    """多个文本数据块组成的回复"""
    return [Message.assistant(part) for part in parts]


def tool_call_reply(*calls: tuple[str, str, str], content: str = "") -> Reply:
    """工具调用回复，每个调用拆成 (id+name) 与 arguments 两个数据块

    Args:
        calls: (call_id, tool_name, arguments_json)
    """
    chunks = [Message.assistant(content)] if content else []
    for index, (call_id, name, arguments) in enumerate(calls):
        chunks.append(
            Message.assistant(
                tool_calls=[
                    ToolCall(index=index, id=call_id, function=FunctionCall(name=name))
                ]
            )
        )
        chunks.append(
            Message.assistant(
                tool_calls=[
                    ToolCall(index=index, function=FunctionCall(arguments=arguments))
                ]
            )
        )
    return chunks


class FakeChatModel(ToolCallingChatModel):
    """按顺序返回预设回复的模型，最后一个回复会被重复使用

    ``replies`` 也可以是 ``messages -> Reply`` 的函数。
    """

    def __init__(self, replies: list[Reply] | Callable[[list[Message]], Reply]):
        self.replies = replies
        self.calls: list[list[Message]] = []
        self.bound_tools: list[ToolInfo] | None = None
        self.with_tools_count = 0

    def with_tools(self, tools: list[ToolInfo]) -> "FakeChatModel":
        self.bound_tools = list(tools)
        self.with_tools_count += 1
        return self

    async def stream(self, messages: list[Message]) -> AsyncIterator[Message]:
        self.calls.append(list(messages))
        if callable(self.replies):
            reply = self.replies(messages)
        else:
            reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        for chunk in reply:
            await asyncio.sleep(0)
            yield chunk


class RecordingTool(BaseTool):
    """记录每次调用参数的工具"""

    def __init__(
        self,
        name: str,
        result: str = "ok",
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        self.name = name
        self.result = result
        self.delay = delay
        self.error = error
        self.calls: list[str] = []
        self.cancelled = False

    async def info(self) -> ToolInfo:
        return ToolInfo(name=self.name, description=f"{self.name} tool")

    async def invoke(self, arguments: str) -> str:
        self.calls.append(arguments)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.result


class BrokenInfoTool(BaseTool):
    """info() 失败的工具"""

    async def info(self) -> ToolInfo:
        raise RuntimeError("schema unavailable")

    async def invoke(self, arguments: str) -> str:
        raise ToolExecutionException("never called")
