"""
react_agent - ReAct agent control loop built on loopflow.

The model proposes either a final answer or tool calls, the tools run, their
results go back to the model, until the answer is final, a direct-return tool
answers, or the iteration budget is spent.
"""

from .agent import ReActAgent, create_agent
from .config import (
    AgentConfig,
    ConfigLoader,
    ConfigurationError,
    LLMConfig,
    LoggingConfig,
    ReActConfig,
)
from .container import ContainerFactory, ReActContainer, configure_logging
from .exceptions import (
    AgentConfigurationError,
    AgentException,
    ExceedMaxIterationsError,
    OpenAIException,
    ReActException,
    ToolCatalogGenerationError,
    ToolExecutionException,
    ToolNotFoundError,
)
from .llm import OpenAIChatModel, OpenAIConfig, ToolCallingChatModel
from .loop import (
    AgentAction,
    ChatModelAgentState,
    LoopConfig,
    LoopState,
    new_react,
    send_tool_gen_action,
)
from .models import FunctionCall, Message, Role, ToolCall, ToolInfo
from .tools import BaseTool, FunctionTool, ToolsNode, ToolsNodeConfig, tool

__version__ = "0.1.0"

__all__ = [
    # 代理
    "ReActAgent",
    "create_agent",
    # 配置与容器
    "AgentConfig",
    "LLMConfig",
    "ReActConfig",
    "LoggingConfig",
    "ConfigLoader",
    "ConfigurationError",
    "ReActContainer",
    "ContainerFactory",
    "configure_logging",
    # 消息
    "Message",
    "Role",
    "ToolCall",
    "FunctionCall",
    "ToolInfo",
    # 模型
    "ToolCallingChatModel",
    "OpenAIChatModel",
    "OpenAIConfig",
    # 工具
    "BaseTool",
    "FunctionTool",
    "tool",
    "ToolsNode",
    "ToolsNodeConfig",
    # 循环
    "new_react",
    "LoopConfig",
    "LoopState",
    "AgentAction",
    "ChatModelAgentState",
    "send_tool_gen_action",
    # 异常
    "AgentException",
    "AgentConfigurationError",
    "ExceedMaxIterationsError",
    "OpenAIException",
    "ReActException",
    "ToolCatalogGenerationError",
    "ToolExecutionException",
    "ToolNotFoundError",
]
