"""ReAct Loop Steps

模型步骤（ModelStep）与工具步骤（ToolStep）。每个步骤提供：

- 节点函数：产出流式输出；
- 状态处理器：由图在持有本次运行锁时调用，签名为 ``(value, state) -> value``。

状态处理器运行期间持有锁，钩子函数内部不能再调用 ``process_state``。
"""

import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Union

from loopflow import StreamReader

from ..exceptions import ExceedMaxIterationsError, ReActException
from ..llm.base import ToolCallingChatModel
from ..models import Message
from ..tools.executor import ToolsNode
from .models import ChatModelAgentState
from .state import LoopState, pop_tool_gen_action

logger = logging.getLogger("react_agent.loop")

ModelHook = Callable[[ChatModelAgentState], Union[None, Awaitable[None]]]


async def run_hooks(hooks: Iterable[ModelHook], agent_state: ChatModelAgentState) -> None:
    """按顺序执行钩子；第一个异常原样抛出并中止后续钩子"""
    for hook in hooks:
        result = hook(agent_state)
        if inspect.isawaitable(result):
            await result


class ModelStep:
    """模型步骤：检查迭代预算，执行前后钩子，调用模型"""

    def __init__(
        self,
        model: ToolCallingChatModel,
        max_iterations: int,
        before_hooks: list[ModelHook] | None = None,
        after_hooks: list[ModelHook] | None = None,
    ):
        self.model = model
        self.max_iterations = max_iterations
        self.before_hooks = list(before_hooks or [])
        self.after_hooks = list(after_hooks or [])

    async def pre_handle(
        self, input: list[Message | None], state: LoopState
    ) -> list[Message]:
        """扣减预算，把新消息追加到历史，执行前置钩子，返回模型的完整输入

        Raises:
            ExceedMaxIterationsError: 预算已耗尽
        """
        if state.remaining_iterations <= 0:
            logger.error(
                f"[{state.agent_name}] exceeded max iterations ({self.max_iterations})"
            )
            raise ExceedMaxIterationsError(max_iterations=self.max_iterations)
        state.remaining_iterations -= 1

        # 工具结果批次合并后的列表可能含空槽位
        new_messages = [message for message in input if message is not None]
        agent_state = ChatModelAgentState(messages=[*state.messages, *new_messages])
        await run_hooks(self.before_hooks, agent_state)
        state.messages = agent_state.messages

        logger.info(
            f"[{state.agent_name}] calling model with {len(state.messages)} messages, "
            f"{state.remaining_iterations} iterations left"
        )
        return state.messages

    async def generate(self, messages: list[Message]) -> AsyncIterator[Message]:
        """转发模型流；模型没有产出任何数据块时以空助手消息作为回复"""
        produced = False
        async with StreamReader(self.model.stream(messages)) as reply:
            async for chunk in reply:
                produced = True
                yield chunk
        if not produced:
            logger.warning("model returned an empty reply")
            yield Message.assistant()

    async def post_handle(self, output: Message, state: LoopState) -> Message:
        """在模型流结束后执行后置钩子，钩子结果成为新的历史"""
        agent_state = ChatModelAgentState(messages=[*state.messages, output])
        await run_hooks(self.after_hooks, agent_state)
        state.messages = agent_state.messages
        return output


class ToolStep:
    """工具步骤：记录直接返回的工具调用，执行工具并附加工具发布的动作"""

    def __init__(self, tools_node: ToolsNode, return_directly: Iterable[str] = ()):
        self.tools_node = tools_node
        self.return_directly = set(return_directly)

    def pre_handle(self, input: Message, state: LoopState) -> Message:
        """以历史中最后一条消息为准（后置钩子可能已改写它）

        多个调用命中直接返回工具时取第一个；一次运行中只记录一次。
        """
        if not state.messages:
            raise ReActException("No assistant message to execute", step="ToolNode")
        message = state.messages[-1]
        if not message.tool_calls:
            logger.warning(
                f"[{state.agent_name}] latest message has no tool calls, nothing to execute"
            )

        if self.return_directly and not state.has_return_directly:
            for call in message.tool_calls:
                if call.function.name in self.return_directly:
                    state.return_directly_tool_call_id = call.id
                    state.has_return_directly = True
                    logger.info(
                        f"[{state.agent_name}] tool call {call.id} ({call.function.name}) returns directly"
                    )
                    break

        return message

    async def stream(self, message: Message) -> AsyncIterator[list[Message | None]]:
        results = self.tools_node.stream(message)
        try:
            async for batch in results:
                yield [
                    await self._attach_action(result) if result is not None else None
                    for result in batch
                ]
        finally:
            await results.aclose()

    async def _attach_action(self, result: Message) -> Message:
        action = await pop_tool_gen_action(result.name or "")
        if action is None:
            return result
        return result.model_copy(update={"extra": {**result.extra, "action": action}})
