"""
Tool System Data Models
"""

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import BaseTool


class ToolsNodeConfig(BaseModel):
    """Configuration of the tool-execution node."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    tools: list[BaseTool] = Field(
        default_factory=list, description="Tools the model may call"
    )
    execute_sequentially: bool = Field(
        False, description="Run the calls of one message one after another"
    )
    unknown_tools_handler: Callable[[str, str], Any] | None = Field(
        None,
        description="Called with (name, arguments) for tools that are not registered",
    )
