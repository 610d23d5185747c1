"""
ReAct Agent Main Class

``ReActAgent`` is the facade over the ReAct loop: it holds the model, the
tools, the hooks and the loop options, builds the loop graph once on first
use and runs it for every request. Each request gets its own loop state, so
one agent instance can serve concurrent requests.
"""

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from pathlib import Path
from typing import Any

from dependency_injector import providers

from loopflow import CompiledGraph

from .config import AgentConfig
from .exceptions import AgentConfigurationError
from .llm.base import ToolCallingChatModel
from .llm.openai_model import OpenAIChatModel
from .loop import DEFAULT_MAX_ITERATIONS, LoopConfig, ModelHook, new_react
from .models import Message
from .tools import BaseTool, FunctionTool, ToolsNodeConfig

logger = logging.getLogger("react_agent.agent")


class ReActAgent:
    """
    ReAct代理主类。

    Example:
        agent = ReActAgent(model, tools=[get_weather], tools_return_directly={"get_weather"})

        answer = await agent.invoke("What's the weather in Beijing?")

        async for chunk in agent.stream([Message.user("Hi")]):
            print(chunk.content, end="")
    """

    def __init__(
        self,
        model: ToolCallingChatModel,
        tools: Iterable[BaseTool | Callable[..., Any]] | None = None,
        *,
        agent_name: str = "react_agent",
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tools_return_directly: Iterable[str] | None = None,
        execute_tools_sequentially: bool = False,
        unknown_tools_handler: Callable[[str, str], Any] | None = None,
        before_chat_model: list[ModelHook] | None = None,
        after_chat_model: list[ModelHook] | None = None,
    ):
        """
        初始化ReAct代理。

        Args:
            model: 支持工具调用的聊天模型
            tools: 工具列表，普通函数会被包装为FunctionTool
            agent_name: 代理名称，用于日志和循环状态
            max_iterations: 单次运行的最大模型调用次数，<=0 时使用默认值20
            tools_return_directly: 结果直接作为最终答案返回的工具名称
            execute_tools_sequentially: 同一条消息中的工具调用是否顺序执行
            unknown_tools_handler: 处理未注册工具调用的函数 ``(name, arguments)``
            before_chat_model: 模型调用前的钩子
            after_chat_model: 模型回复后的钩子
        """
        self.name = agent_name
        self.model = model
        self.tools = [_as_tool(tool) for tool in (tools or [])]
        self.max_iterations = max_iterations
        self.tools_return_directly = set(tools_return_directly or [])
        self.execute_tools_sequentially = execute_tools_sequentially
        self.unknown_tools_handler = unknown_tools_handler
        self.before_chat_model = list(before_chat_model or [])
        self.after_chat_model = list(after_chat_model or [])

        self._graph: CompiledGraph | None = None
        self._build_lock = asyncio.Lock()

        logger.info(f"ReActAgent '{agent_name}' initialized with {len(self.tools)} tools")

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        model: ToolCallingChatModel | None = None,
        tools: Iterable[BaseTool | Callable[..., Any]] | None = None,
        **kwargs: Any,
    ) -> "ReActAgent":
        """按AgentConfig创建代理；未提供模型时使用OpenAI模型"""
        if model is None:
            model = OpenAIChatModel(config.llm.to_openai_config())

        return cls(
            model,
            tools,
            agent_name=config.react.agent_name,
            max_iterations=config.react.max_iterations,
            tools_return_directly=config.react.tools_return_directly,
            execute_tools_sequentially=config.react.execute_tools_sequentially,
            **kwargs,
        )

    async def _get_graph(self) -> CompiledGraph:
        if self._graph is None:
            async with self._build_lock:
                if self._graph is None:
                    graph = await new_react(self._loop_config())
                    self._graph = graph.compile()
        return self._graph

    def _loop_config(self) -> LoopConfig:
        return LoopConfig(
            model=self.model,
            tools_config=ToolsNodeConfig(
                tools=self.tools,
                execute_sequentially=self.execute_tools_sequentially,
                unknown_tools_handler=self.unknown_tools_handler,
            ),
            agent_name=self.name,
            max_iterations=self.max_iterations,
            tools_return_directly=self.tools_return_directly,
            before_chat_model=self.before_chat_model,
            after_chat_model=self.after_chat_model,
        )

    async def invoke(self, messages: str | list[Message]) -> Message | None:
        """
        运行代理直到得到最终答案。

        Returns:
            最终的助手消息，或直接返回工具的结果消息；
            直接返回的结果没有产出任何消息时为None

        Raises:
            ExceedMaxIterationsError: 超过最大迭代次数
            ToolCatalogGenerationError: 首次构建循环时工具准备失败
        """
        graph = await self._get_graph()
        return await graph.invoke(_as_messages(messages))

    async def stream(self, messages: str | list[Message]) -> AsyncIterator[Message]:
        """以数据块的形式流式返回最终答案；提前退出迭代会取消本次运行"""
        graph = await self._get_graph()
        async with graph.stream(_as_messages(messages)) as output:
            async for chunk in output:
                yield chunk

    async def aclose(self) -> None:
        """释放模型持有的连接"""
        close = getattr(self.model, "aclose", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result

    def __repr__(self) -> str:
        return f"ReActAgent(name='{self.name}', tools={len(self.tools)})"


def create_agent(
    tools: Iterable[BaseTool | Callable[..., Any]] | None = None,
    model: ToolCallingChatModel | None = None,
    config_file: str | Path | None = None,
    **config_overrides: Any,
) -> ReActAgent:
    """
    通过依赖注入容器快速创建代理。

    Args:
        tools: 工具列表
        model: 聊天模型，默认使用容器中的OpenAI模型
        config_file: 配置文件路径
        **config_overrides: 扁平的配置覆盖项，例如 ``react_max_iterations=5``
    """
    # container模块依赖本模块
    from .container import ContainerFactory

    container = ContainerFactory.create_container(
        config_file=config_file, **config_overrides
    )
    if tools is not None:
        container.tools.override(providers.Object(list(tools)))
    if model is not None:
        container.chat_model.override(providers.Object(model))

    return container.agent()


def _as_tool(tool: BaseTool | Callable[..., Any]) -> BaseTool:
    if isinstance(tool, BaseTool):
        return tool
    if callable(tool):
        return FunctionTool(tool)
    raise AgentConfigurationError(f"Unsupported tool type: {type(tool).__name__}")


def _as_messages(messages: str | list[Message]) -> list[Message]:
    if isinstance(messages, str):
        return [Message.user(messages)]
    return list(messages)
