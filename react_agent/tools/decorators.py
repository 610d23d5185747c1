"""
Tool Decorator

Implements the @tool decorator that converts regular Python functions into
agent tools. Name defaults to the function name and description to its
docstring; the argument schema is derived from the signature.
"""

from collections.abc import Callable
from typing import Any

from .base import FunctionTool


def tool(
    name: str | Callable[..., Any] | None = None,
    description: str | None = None,
) -> FunctionTool | Callable[[Callable[..., Any]], FunctionTool]:
    """
    Decorator to convert a function into a ReAct agent tool.

    Example:
        @tool("calculator", "Add two numbers together")
        def add(a: float, b: float) -> float:
            return a + b

        @tool
        async def web_search(query: str, max_results: int = 10) -> list[str]:
            '''Search the web'''
            ...
    """

    # 支持两种调用方式：@tool 和 @tool(...)
    if callable(name):
        return FunctionTool(name, description=description)

    def decorator(func: Callable[..., Any]) -> FunctionTool:
        return FunctionTool(func, name=name, description=description)

    return decorator
