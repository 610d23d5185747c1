"""
Tool System for ReAct Agents

- BaseTool / FunctionTool: tool contract and function-backed implementation
- tool: decorator turning a function into a FunctionTool
- ToolsNode: executes the tool calls of one assistant message
- ToolsNodeConfig: tool list and execution options
"""

from .base import BaseTool, FunctionTool, render_result
from .decorators import tool
from .executor import ToolsNode
from .models import ToolsNodeConfig

__all__ = [
    "BaseTool",
    "FunctionTool",
    "render_result",
    "tool",
    "ToolsNode",
    "ToolsNodeConfig",
]
