"""ReAct Loop Engine

把模型步骤与工具步骤组装为可循环的图::

    START -> ChatModel --tool_call_check--> ToolNode | END
    ToolNode -> ChatModel                                   (没有直接返回工具)
    ToolNode --check_return_direct--> ChatModel | ToolNodeToEndConverter -> END

每次运行创建独立的 ``LoopState``；所有状态读写经由 ``process_state``。
"""

import logging
from dataclasses import dataclass, field
from functools import partial

from loopflow import (
    END,
    START,
    Graph,
    GraphBranch,
    Node,
    NodeMode,
    NoValue,
    StreamReader,
    node,
)

from ..exceptions import ToolCatalogGenerationError
from ..llm.base import ToolCallingChatModel
from ..models import Message, ToolInfo
from ..tools.executor import ToolsNode
from ..tools.models import ToolsNodeConfig
from .nodes import ModelHook, ModelStep, ToolStep
from .state import (
    DEFAULT_MAX_ITERATIONS,
    effective_max_iterations,
    get_return_directly_tool_call_id,
    new_loop_state,
)

logger = logging.getLogger("react_agent.loop")

CHAT_MODEL_NODE = "ChatModel"
TOOL_NODE = "ToolNode"
TOOL_NODE_TO_END_CONVERTER = "ToolNodeToEndConverter"


@dataclass
class LoopConfig:
    """构建ReAct图所需的配置"""

    model: ToolCallingChatModel
    tools_config: ToolsNodeConfig = field(default_factory=ToolsNodeConfig)
    agent_name: str = ""
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tools_return_directly: set[str] = field(default_factory=set)
    before_chat_model: list[ModelHook] = field(default_factory=list)
    after_chat_model: list[ModelHook] = field(default_factory=list)


async def gen_tool_infos(tools_config: ToolsNodeConfig) -> list[ToolInfo]:
    return [await tool.info() for tool in tools_config.tools]


@node(enable_retry=False)
async def tool_call_check(stream: StreamReader) -> str:
    """模型输出中出现第一个工具调用即转向工具节点，流结束仍未出现则结束"""
    async for chunk in stream:
        if chunk.tool_calls:
            return TOOL_NODE
    return END


@node(enable_retry=False)
async def check_return_direct(stream: StreamReader) -> str:
    # 只依据状态中的标记决定去向，不读取工具输出
    _, has_return_directly = await get_return_directly_tool_call_id()
    if has_return_directly:
        return TOOL_NODE_TO_END_CONVERTER
    return CHAT_MODEL_NODE


@node(enable_retry=False)
async def return_direct_converter(stream: StreamReader) -> StreamReader:
    """把每个工具结果批次缩减为直接返回的那条消息，不含该消息的批次被丢弃"""
    call_id, _ = await get_return_directly_tool_call_id()

    def pick(batch: list[Message | None]) -> Message:
        for message in batch:
            if message is not None and message.tool_call_id == call_id:
                return message
        raise NoValue

    return stream.convert(pick)


async def new_react(config: LoopConfig) -> Graph:
    """构建ReAct图

    Raises:
        ToolCatalogGenerationError: 生成工具列表、绑定模型或创建工具节点失败
    """
    max_iterations = effective_max_iterations(config.max_iterations)

    try:
        tool_infos = await gen_tool_infos(config.tools_config)
        chat_model = config.model.with_tools(tool_infos)
        tools_node = await ToolsNode.create(config.tools_config)
    except Exception as e:
        logger.error(f"Failed to prepare tools for agent '{config.agent_name}': {e}")
        raise ToolCatalogGenerationError(
            f"Failed to prepare tools: {type(e).__name__}: {e}"
        ) from e

    model_step = ModelStep(
        chat_model,
        max_iterations=max_iterations,
        before_hooks=config.before_chat_model,
        after_hooks=config.after_chat_model,
    )
    tool_step = ToolStep(tools_node, return_directly=config.tools_return_directly)

    graph = Graph(
        gen_local_state=partial(new_loop_state, config.agent_name, max_iterations),
        name=config.agent_name or "react",
    )
    graph.add_node(
        CHAT_MODEL_NODE,
        Node(model_step.generate, CHAT_MODEL_NODE),
        mode=NodeMode.STREAM,
        pre_handler=model_step.pre_handle,
        post_handler=model_step.post_handle,
    )
    graph.add_node(
        TOOL_NODE,
        Node(tool_step.stream, TOOL_NODE),
        mode=NodeMode.STREAM,
        pre_handler=tool_step.pre_handle,
    )

    graph.add_edge(START, CHAT_MODEL_NODE)
    graph.add_branch(CHAT_MODEL_NODE, GraphBranch(tool_call_check, [END, TOOL_NODE]))

    if not config.tools_return_directly:
        graph.add_edge(TOOL_NODE, CHAT_MODEL_NODE)
    else:
        graph.add_node(
            TOOL_NODE_TO_END_CONVERTER,
            return_direct_converter,
            mode=NodeMode.TRANSFORM,
        )
        graph.add_edge(TOOL_NODE_TO_END_CONVERTER, END)
        graph.add_branch(
            TOOL_NODE,
            GraphBranch(
                check_return_direct, [TOOL_NODE_TO_END_CONVERTER, CHAT_MODEL_NODE]
            ),
        )

    logger.info(
        f"ReAct graph built for agent '{config.agent_name}' with tools "
        f"{[info.name for info in tool_infos]}, max_iterations={max_iterations}"
    )
    return graph
