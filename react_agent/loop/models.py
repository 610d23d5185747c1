"""ReAct Loop Data Models

循环中在模型步骤、工具步骤与钩子之间传递的数据结构。
"""

from typing import Any

from pydantic import BaseModel, Field

from ..models import Message


class AgentAction(BaseModel):
    """工具在执行期间发布的带外动作

    工具步骤在工具完成后取出该动作，挂到结果消息的 ``extra["action"]`` 上。
    """

    exit: bool = Field(default=False, description="请求结束代理运行")
    transfer_to_agent: str | None = Field(None, description="转交的目标代理名称")
    interrupted: dict[str, Any] | None = Field(None, description="中断信息")
    customized: Any | None = Field(None, description="自定义动作数据")


class ChatModelAgentState(BaseModel):
    """模型前/后钩子看到的视图，钩子可以替换或改写其中的消息"""

    messages: list[Message] = Field(default_factory=list, description="会话消息")
