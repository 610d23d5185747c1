"""ReAct循环模块

基于loopflow图实现的 模型 -> 工具 -> 模型 控制循环。
"""

from .engine import (
    CHAT_MODEL_NODE,
    TOOL_NODE,
    TOOL_NODE_TO_END_CONVERTER,
    LoopConfig,
    check_return_direct,
    gen_tool_infos,
    new_react,
    return_direct_converter,
    tool_call_check,
)
from .models import AgentAction, ChatModelAgentState
from .nodes import ModelHook, ModelStep, ToolStep, run_hooks
from .state import (
    DEFAULT_MAX_ITERATIONS,
    LoopState,
    effective_max_iterations,
    get_return_directly_tool_call_id,
    new_loop_state,
    pop_tool_gen_action,
    send_tool_gen_action,
)

__all__ = [
    # 图构建
    "new_react",
    "LoopConfig",
    "gen_tool_infos",
    "CHAT_MODEL_NODE",
    "TOOL_NODE",
    "TOOL_NODE_TO_END_CONVERTER",
    # 分支与转换
    "tool_call_check",
    "check_return_direct",
    "return_direct_converter",
    # 步骤
    "ModelStep",
    "ToolStep",
    "ModelHook",
    "run_hooks",
    # 状态
    "LoopState",
    "DEFAULT_MAX_ITERATIONS",
    "effective_max_iterations",
    "new_loop_state",
    "send_tool_gen_action",
    "pop_tool_gen_action",
    "get_return_directly_tool_call_id",
    # 数据模型
    "AgentAction",
    "ChatModelAgentState",
]
