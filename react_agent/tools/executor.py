"""
Tool Execution Node

Executes the tool calls of one assistant message. Calls run concurrently on
asyncio tasks by default, or one after another when configured. Results are
streamed as positional batches: every batch is a list with one slot per call
of the message, holding the finished result at its position and ``None``
elsewhere, so batches merge back into the complete result list in call order.

Failure handling:
- An unknown tool goes to ``unknown_tools_handler`` when configured, otherwise
  raises ``ToolNotFoundError``.
- Any tool failure raises ``ToolExecutionException`` and cancels the calls
  still running.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from loopflow import StreamReader

from ..exceptions import ToolExecutionException, ToolNotFoundError
from ..models import Message, ToolCall
from .base import BaseTool, render_result
from .models import ToolsNodeConfig

logger = logging.getLogger("react_agent.tools.executor")


class ToolsNode:
    """Tool execution manager for one agent."""

    def __init__(
        self,
        tools: dict[str, BaseTool],
        execute_sequentially: bool = False,
        unknown_tools_handler: Callable[[str, str], Any] | None = None,
    ):
        self.tools = tools
        self.execute_sequentially = execute_sequentially
        self.unknown_tools_handler = unknown_tools_handler

    @classmethod
    async def create(cls, config: ToolsNodeConfig) -> "ToolsNode":
        """
        Build the node, indexing every tool by the name from its ``info()``.

        Raises:
            ValueError: two tools share a name
        """
        tools: dict[str, BaseTool] = {}
        for tool in config.tools:
            info = await tool.info()
            if info.name in tools:
                raise ValueError(f"Duplicate tool name '{info.name}'")
            tools[info.name] = tool

        logger.info(f"ToolsNode created with tools {list(tools)}")
        return cls(
            tools,
            execute_sequentially=config.execute_sequentially,
            unknown_tools_handler=config.unknown_tools_handler,
        )

    async def stream(self, message: Message) -> AsyncIterator[list[Message | None]]:
        """Execute the message's tool calls, yielding positional result batches."""
        calls = message.tool_calls
        size = len(calls)
        if not calls:
            # an empty batch still concatenates to an empty result list
            yield []
            return

        if self.execute_sequentially:
            for position, call in enumerate(calls):
                result = await self.execute_call(call)
                yield _batch(size, position, result)
            return

        tasks = {
            asyncio.create_task(self.execute_call(call)): position
            for position, call in enumerate(calls)
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in sorted(done, key=tasks.__getitem__):
                    yield _batch(size, tasks[task], task.result())
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            # several calls can fail in one round; only the first failure propagates
            for task in tasks:
                if task.done() and not task.cancelled():
                    task.exception()

    async def invoke(self, message: Message) -> list[Message]:
        """Execute the message's tool calls and return results in call order."""
        return await StreamReader(self.stream(message)).concat()

    async def execute_call(self, call: ToolCall) -> Message:
        """Execute a single tool call."""
        name = call.function.name
        start_time = time.time()
        try:
            tool = self.tools.get(name)
            if tool is not None:
                content = await tool.invoke(call.function.arguments)
            elif self.unknown_tools_handler is not None:
                content = self.unknown_tools_handler(name, call.function.arguments)
                if inspect.isawaitable(content):
                    content = await content
            else:
                raise ToolNotFoundError(
                    f"Tool '{name}' not found", tool_name=name, call_id=call.id
                )
            result = Message.tool(
                render_result(content), tool_call_id=call.id, name=name
            )
        except ToolExecutionException:
            raise
        except Exception as e:
            logger.error(f"Tool '{name}' (call {call.id}) failed: {e}")
            raise ToolExecutionException(
                f"Tool '{name}' failed: {type(e).__name__}: {e}",
                tool_name=name,
                call_id=call.id,
            ) from e

        logger.debug(
            f"Tool '{name}' (call {call.id}) completed in {(time.time() - start_time) * 1000:.1f}ms"
        )
        return result


def _batch(size: int, position: int, result: Message) -> list[Message | None]:
    batch: list[Message | None] = [None] * size
    batch[position] = result
    return batch
