"""Graph execution with branches, loops and per-run local state.

图由若干节点、普通边和流式分支组成，可以包含环（例如 模型 → 工具 → 模型）。
每次运行：

- 调用 ``gen_local_state`` 生成本次运行独占的本地状态；
- 所有状态读写都经由 ``process_state`` 串行化（每次运行一把 ``asyncio.Lock``）；
- 节点输出均为 ``StreamReader``，分支条件读取输出的一个副本，另一个副本流向下一个节点或调用方；
- 图在独立的生产者任务中执行，输出块通过队列交给调用方。
"""

import asyncio
import contextlib
import contextvars
import inspect
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

from .core import (
    BranchRoutingException,
    GraphBuildException,
    Node,
    StateAccessException,
)
from .stream import StreamReader, concat_chunks

logger = logging.getLogger("loopflow.graph")

START = "__start__"
END = "__end__"


class NodeMode(str, Enum):
    """节点的输入输出形态"""

    INVOKE = "invoke"  # 完整输入 -> 完整输出
    STREAM = "stream"  # 完整输入 -> 异步数据块流
    TRANSFORM = "transform"  # 输入流 -> 输出流


@dataclass
class _RunContext:
    state: Any
    lock: asyncio.Lock


_current_run: contextvars.ContextVar[_RunContext | None] = contextvars.ContextVar(
    "loopflow_run", default=None
)


async def process_state(handler: Callable[[Any], Any]) -> Any:
    """在当前运行的本地状态上执行读-改-写闭包

    ``handler(state)`` 可以是同步函数或返回awaitable，执行期间持有本次运行的锁。
    锁不可重入：handler内部不能再次调用 ``process_state``。

    Raises:
        StateAccessException: 不在图运行上下文中，或图没有配置本地状态
    """
    run = _current_run.get()
    if run is None:
        raise StateAccessException("process_state called outside of a graph run")
    if run.state is None:
        raise StateAccessException("graph was built without gen_local_state")

    async with run.lock:
        result = handler(run.state)
        if inspect.isawaitable(result):
            result = await result
        return result


class GraphBranch:
    """流式分支：条件函数读取上游输出流，返回下一个节点的key"""

    def __init__(
        self,
        condition: Callable[[StreamReader], Any],
        end_nodes: Iterable[str],
    ):
        self.condition = condition
        self.end_nodes = set(end_nodes)
        if not self.end_nodes:
            raise GraphBuildException("GraphBranch requires at least one end node")

    async def select(self, stream: StreamReader) -> str:
        target = self.condition(stream)
        if inspect.isawaitable(target):
            target = await target
        if target not in self.end_nodes:
            raise BranchRoutingException(
                f"Branch returned undeclared target '{target}', expected one of {sorted(self.end_nodes)}"
            )
        return target


@dataclass
class _GraphNode:
    key: str
    node: Node
    mode: NodeMode
    pre_handler: Callable[[Any, Any], Any] | None = None
    post_handler: Callable[[Any, Any], Any] | None = None


class Graph:
    """可包含环的有向图构建器

    Example:
        ```python
        graph = Graph(gen_local_state=dict)
        graph.add_node("double", Node(double, "double"))
        graph.add_edge(START, "double").add_edge("double", END)
        result = await graph.compile().invoke(21)
        ```
    """

    def __init__(
        self,
        gen_local_state: Callable[[], Any] | None = None,
        name: str = "graph",
    ):
        self.name = name
        self._gen_local_state = gen_local_state
        self._nodes: dict[str, _GraphNode] = {}
        self._edges: dict[str, str] = {}
        self._branches: dict[str, GraphBranch] = {}

    def add_node(
        self,
        key: str,
        node: Node,
        *,
        mode: NodeMode = NodeMode.INVOKE,
        pre_handler: Callable[[Any, Any], Any] | None = None,
        post_handler: Callable[[Any, Any], Any] | None = None,
    ) -> "Graph":
        """添加节点

        Args:
            key: 节点key，在图内唯一
            node: 要执行的Node
            mode: 输入输出形态
            pre_handler: ``(input, state) -> input``，在节点执行前持锁运行
            post_handler: ``(output, state) -> output``，在节点产出完整输出后持锁运行。
                对于STREAM节点，它在最后一个数据块之后看到合并后的输出，已发出的数据块不会被改写。
        """
        if key in (START, END):
            raise GraphBuildException(f"Node key '{key}' is reserved", node_name=key)
        if key in self._nodes:
            raise GraphBuildException(f"Node '{key}' already exists", node_name=key)
        if mode is NodeMode.TRANSFORM and (pre_handler or post_handler):
            raise GraphBuildException(
                "Transform nodes do not support state handlers", node_name=key
            )
        if (pre_handler or post_handler) and self._gen_local_state is None:
            raise GraphBuildException(
                "State handlers require gen_local_state", node_name=key
            )

        self._nodes[key] = _GraphNode(key, node, mode, pre_handler, post_handler)
        return self

    def add_edge(self, start: str, end: str) -> "Graph":
        if start == END or end == START:
            raise GraphBuildException(f"Invalid edge {start} -> {end}")
        self._check_outgoing_free(start)
        self._edges[start] = end
        return self

    def add_branch(self, start: str, branch: GraphBranch) -> "Graph":
        if start in (START, END):
            raise GraphBuildException(f"Cannot branch from '{start}'")
        self._check_outgoing_free(start)
        self._branches[start] = branch
        return self

    def _check_outgoing_free(self, start: str) -> None:
        if start in self._edges or start in self._branches:
            raise GraphBuildException(
                f"Node '{start}' already has an outgoing edge or branch",
                node_name=start,
            )

    def compile(self) -> "CompiledGraph":
        """校验图结构并生成可执行图"""
        if START not in self._edges:
            raise GraphBuildException("Graph has no edge from START")

        known = set(self._nodes) | {END}
        for start, end in self._edges.items():
            if start != START and start not in self._nodes:
                raise GraphBuildException(f"Edge starts at unknown node '{start}'")
            if end not in known:
                raise GraphBuildException(f"Edge points to unknown node '{end}'")
        for start, branch in self._branches.items():
            if start not in self._nodes:
                raise GraphBuildException(f"Branch starts at unknown node '{start}'")
            unknown = branch.end_nodes - known
            if unknown:
                raise GraphBuildException(
                    f"Branch from '{start}' points to unknown nodes {sorted(unknown)}"
                )
        for key in self._nodes:
            if key not in self._edges and key not in self._branches:
                raise GraphBuildException(
                    f"Node '{key}' has no outgoing edge or branch", node_name=key
                )

        logger.info(
            f"Compiled graph '{self.name}' with nodes {list(self._nodes)}"
        )
        return CompiledGraph(
            name=self.name,
            nodes=dict(self._nodes),
            edges=dict(self._edges),
            branches=dict(self._branches),
            gen_local_state=self._gen_local_state,
        )


_CHUNK = "chunk"
_ERROR = "error"
_DONE = "done"


class CompiledGraph:
    """可执行图；同一实例可以被多个运行并发使用，运行之间不共享状态"""

    def __init__(
        self,
        name: str,
        nodes: dict[str, _GraphNode],
        edges: dict[str, str],
        branches: dict[str, GraphBranch],
        gen_local_state: Callable[[], Any] | None,
    ):
        self.name = name
        self._nodes = nodes
        self._edges = edges
        self._branches = branches
        self._gen_local_state = gen_local_state

    async def invoke(self, input: Any) -> Any:
        """执行到结束并合并输出；没有产出任何数据块时返回None"""
        chunks = await self.stream(input).collect()
        if not chunks:
            return None
        return concat_chunks(chunks)

    def stream(self, input: Any) -> StreamReader:
        """执行图，以流的形式返回最终输出；提前关闭流会取消执行"""
        return StreamReader(self._run(input))

    async def _run(self, input: Any) -> AsyncIterator[Any]:
        state = self._gen_local_state() if self._gen_local_state else None
        run = _RunContext(state=state, lock=asyncio.Lock())
        context = contextvars.copy_context()
        context.run(_current_run.set, run)

        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        task = asyncio.create_task(self._produce(input, queue), context=context)
        try:
            while True:
                kind, payload = await queue.get()
                if kind == _DONE:
                    break
                if kind == _ERROR:
                    raise payload
                yield payload
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _produce(self, input: Any, queue: asyncio.Queue) -> None:
        execution = self._execute(input)
        try:
            async for chunk in execution:
                await queue.put((_CHUNK, chunk))
        except Exception as e:
            logger.error(f"[{self.name}] run failed: {type(e).__name__}: {e}")
            await queue.put((_ERROR, e))
            return
        finally:
            await execution.aclose()
        await queue.put((_DONE, None))

    async def _execute(self, input: Any) -> AsyncIterator[Any]:
        current = self._edges[START]
        stream = StreamReader.from_iterable([input])
        step = 0
        try:
            while True:
                step += 1
                graph_node = self._nodes[current]
                logger.debug(f"[{self.name}] step {step}: running node '{current}'")

                output = await self._run_node(graph_node, stream)
                target, stream = await self._route(current, output)
                logger.info(f"[{self.name}] {current} -> {target}")

                if target == END:
                    async with stream:
                        async for chunk in stream:
                            yield chunk
                    return
                current = target
        finally:
            await stream.aclose()

    async def _run_node(self, graph_node: _GraphNode, stream: StreamReader) -> StreamReader:
        if graph_node.mode is NodeMode.TRANSFORM:
            result = graph_node.node(stream)
            if inspect.isawaitable(result):
                result = await result
            return _as_stream(result)

        value = await stream.concat()
        if graph_node.pre_handler is not None:
            value = await process_state(partial(graph_node.pre_handler, value))

        result = graph_node.node(value)
        if inspect.isawaitable(result):
            result = await result

        if graph_node.mode is NodeMode.INVOKE:
            if graph_node.post_handler is not None:
                result = await process_state(partial(graph_node.post_handler, result))
            return StreamReader.from_iterable([result])

        output = _as_stream(result)
        if graph_node.post_handler is not None:
            output = _with_post_handler(output, graph_node.post_handler)
        return output

    async def _route(self, current: str, output: StreamReader) -> tuple[str, StreamReader]:
        branch = self._branches.get(current)
        if branch is None:
            return self._edges[current], output

        branch_copy, forward = output.copy(2)
        try:
            target = await branch.select(branch_copy)
        except BaseException:
            await forward.aclose()
            raise
        finally:
            await branch_copy.aclose()
        return target, forward


def _as_stream(result: Any) -> StreamReader:
    if isinstance(result, StreamReader):
        return result
    return StreamReader(result)


def _with_post_handler(source: StreamReader, handler: Callable[[Any, Any], Any]) -> StreamReader:
    async def _gen():
        chunks = []
        async with source:
            async for chunk in source:
                chunks.append(chunk)
                yield chunk
        if chunks:
            await process_state(partial(handler, concat_chunks(chunks)))

    return StreamReader(_gen())
