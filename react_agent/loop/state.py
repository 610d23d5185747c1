"""ReAct Loop State

每次运行独占的可变状态：会话历史、迭代预算、直接返回标记与工具生成的动作。
状态由图的本地状态工厂创建，只能通过 ``loopflow.process_state`` 访问。
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from loopflow import process_state

from ..models import Message
from .models import AgentAction

logger = logging.getLogger("react_agent.loop")

DEFAULT_MAX_ITERATIONS = 20


class LoopState(BaseModel):
    """单次运行的循环状态"""

    model_config = ConfigDict(validate_assignment=True)

    messages: list[Message] = Field(default_factory=list, description="会话历史")
    remaining_iterations: int = Field(
        default=DEFAULT_MAX_ITERATIONS, ge=0, description="剩余模型调用次数"
    )
    tool_gen_actions: dict[str, AgentAction] = Field(
        default_factory=dict, description="工具名 -> 工具发布的动作"
    )
    return_directly_tool_call_id: str | None = Field(
        None, description="结果需直接返回的工具调用ID"
    )
    has_return_directly: bool = Field(default=False, description="是否触发直接返回")
    agent_name: str = Field(default="", description="代理名称")


def effective_max_iterations(max_iterations: int | None) -> int:
    """未设置或非正数时使用默认上限"""
    if max_iterations is None or max_iterations <= 0:
        return DEFAULT_MAX_ITERATIONS
    return max_iterations


def new_loop_state(agent_name: str = "", max_iterations: int | None = None) -> LoopState:
    return LoopState(
        agent_name=agent_name,
        remaining_iterations=effective_max_iterations(max_iterations),
    )


async def send_tool_gen_action(tool_name: str, action: AgentAction) -> None:
    """在工具执行期间发布动作，同名工具的旧动作被覆盖

    只能在代理运行中调用（例如在工具函数内部）。
    """

    def handler(state: LoopState) -> None:
        state.tool_gen_actions[tool_name] = action

    await process_state(handler)
    logger.debug(f"Tool '{tool_name}' published action {action}")


async def pop_tool_gen_action(tool_name: str) -> AgentAction | None:
    """取出并移除工具发布的动作"""

    def handler(state: LoopState) -> AgentAction | None:
        return state.tool_gen_actions.pop(tool_name, None)

    return await process_state(handler)


async def get_return_directly_tool_call_id() -> tuple[str | None, bool]:
    def handler(state: LoopState) -> tuple[str | None, bool]:
        return state.return_directly_tool_call_id, state.has_return_directly

    return await process_state(handler)
