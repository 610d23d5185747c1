"""
Core message schema shared by the loop, the model layer and the tool layer.

Messages are immutable records. A streamed assistant reply arrives as several
``Message`` chunks which ``concat_messages`` folds back into one message;
the function is registered with ``loopflow`` so graph nodes can merge
message streams transparently.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from loopflow import register_concat


class Role(str, Enum):
    """Conversation role of a message"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FunctionCall(BaseModel):
    """Function name and JSON-encoded arguments of a tool call"""

    model_config = ConfigDict(frozen=True)

    name: str = Field("", description="Tool name")
    arguments: str = Field("", description="JSON-encoded call arguments")


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    index: int | None = Field(
        None, description="Position in a streamed reply, used to merge chunks"
    )
    id: str = Field("", description="Unique call identifier")
    type: str = Field("function", description="Call type")
    function: FunctionCall = Field(default_factory=FunctionCall)


class Message(BaseModel):
    """One turn of conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="Message role")
    content: str = Field("", description="Text content")
    name: str | None = Field(None, description="Tool name on tool messages")
    tool_calls: list[ToolCall] = Field(
        default_factory=list, description="Tool calls requested by the assistant"
    )
    tool_call_id: str | None = Field(
        None, description="Call identifier answered by a tool message"
    )
    extra: dict[str, Any] = Field(
        default_factory=dict, description="Additional metadata"
    )

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: list[ToolCall] | None = None
    ) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)


class ToolInfo(BaseModel):
    """Information about a tool offered to the model."""

    name: str = Field(..., description="Tool name")
    description: str = Field("", description="Tool description")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the tool arguments",
    )


def concat_messages(chunks: list[Message]) -> Message:
    """Merge streamed message chunks into a single message.

    Content is joined, tool calls are merged by their ``index`` (argument
    fragments concatenated, first non-empty id/name kept), ``extra`` mappings
    are merged in order.

    Raises:
        ValueError: on an empty chunk list or conflicting roles
    """
    if not chunks:
        raise ValueError("cannot concat an empty message list")

    role = chunks[0].role
    for chunk in chunks[1:]:
        if chunk.role != role:
            raise ValueError(f"cannot concat messages with roles {role} and {chunk.role}")

    extra: dict[str, Any] = {}
    for chunk in chunks:
        extra.update(chunk.extra)

    return Message(
        role=role,
        content="".join(chunk.content for chunk in chunks),
        name=next((c.name for c in chunks if c.name), None),
        tool_calls=_merge_tool_calls([call for c in chunks for call in c.tool_calls]),
        tool_call_id=next((c.tool_call_id for c in chunks if c.tool_call_id), None),
        extra=extra,
    )


def _merge_tool_calls(calls: list[ToolCall]) -> list[ToolCall]:
    indexed: dict[int, ToolCall] = {}
    unindexed: list[ToolCall] = []

    for call in calls:
        if call.index is None:
            unindexed.append(call)
            continue
        previous = indexed.get(call.index)
        if previous is None:
            indexed[call.index] = call
            continue
        indexed[call.index] = ToolCall(
            index=call.index,
            id=previous.id or call.id,
            type=previous.type or call.type,
            function=FunctionCall(
                name=previous.function.name or call.function.name,
                arguments=previous.function.arguments + call.function.arguments,
            ),
        )

    return [indexed[i] for i in sorted(indexed)] + unindexed


register_concat(Message, concat_messages)
