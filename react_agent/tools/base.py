"""
Tool contract and the function-backed tool implementation.

A tool exposes its ``ToolInfo`` (name, description and a JSON schema of its
arguments) and executes one call given the model's JSON-encoded arguments.
"""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import partial
from typing import Any, get_type_hints

from pydantic import BaseModel, ValidationError, create_model

from ..exceptions import ToolExecutionException
from ..models import ToolInfo

logger = logging.getLogger("react_agent.tools")


class BaseTool(ABC):
    """Base class of every tool the agent can call."""

    @abstractmethod
    async def info(self) -> ToolInfo:
        """Describe the tool to the model."""

    @abstractmethod
    async def invoke(self, arguments: str) -> str:
        """Execute one call and return its textual result."""


class FunctionTool(BaseTool):
    """
    Tool backed by a plain Python function.

    The function signature is turned into a pydantic model, which provides
    both the argument JSON schema sent to the model and validation of the
    arguments the model sends back. Sync functions run in the default
    executor so they never block the event loop.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
    ):
        self.func = func
        self.name = name or func.__name__
        self.description = description or (
            inspect.getdoc(func) or f"Execute {self.name}"
        )
        self.is_async = inspect.iscoroutinefunction(func)
        self.args_model = _build_args_model(func, self.name)

    async def info(self) -> ToolInfo:
        return ToolInfo(
            name=self.name,
            description=self.description,
            parameters=self.args_model.model_json_schema(),
        )

    async def invoke(self, arguments: str) -> str:
        try:
            parsed = self.args_model.model_validate_json(arguments or "{}")
        except ValidationError as e:
            raise ToolExecutionException(
                f"Invalid arguments for tool '{self.name}': {e}", tool_name=self.name
            ) from e

        kwargs = {field: getattr(parsed, field) for field in type(parsed).model_fields}
        logger.debug(f"Executing tool '{self.name}' with {kwargs}")

        if self.is_async:
            result = await self.func(**kwargs)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, partial(self.func, **kwargs))

        return render_result(result)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        """Call the wrapped function directly."""
        return self.func(*args, **kwargs)

    def __repr__(self) -> str:
        return f"FunctionTool(name='{self.name}')"


def render_result(result: Any) -> str:
    """Render a tool return value as message content."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, ensure_ascii=False, default=str)


def _build_args_model(func: Callable[..., Any], tool_name: str) -> type[BaseModel]:
    signature = inspect.signature(func)
    type_hints = get_type_hints(func)

    fields: dict[str, Any] = {}
    for param_name, param in signature.parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param_name.startswith("_"):
            continue
        annotation = type_hints.get(param_name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param_name] = (annotation, default)

    return create_model(f"{tool_name}_arguments", **fields)
