"""聊天模型抽象：绑定工具列表，并以流的形式产出一条助手消息。"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from loopflow import StreamReader

from ..models import Message, ToolInfo


class ToolCallingChatModel(ABC):
    """支持工具调用的聊天模型"""

    @abstractmethod
    def with_tools(self, tools: list[ToolInfo]) -> "ToolCallingChatModel":
        """返回绑定了工具列表的新模型实例，原实例不变"""

    @abstractmethod
    def stream(self, messages: list[Message]) -> AsyncIterator[Message]:
        """以增量数据块的形式生成一条助手消息"""

    async def generate(self, messages: list[Message]) -> Message:
        """生成完整的助手消息"""
        return await StreamReader(self.stream(messages)).concat()
