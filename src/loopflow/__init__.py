"""loopflow - node and graph execution engine.

节点（Node / @node）、一次性数据块流（StreamReader）、
支持环与流式分支的图（Graph），以及每次运行独占的本地状态访问器（process_state）。
"""

from .core import (
    BranchRoutingException,
    GraphBuildException,
    LoopFlowException,
    Node,
    NodeExecutionException,
    NodeRetryExhaustedException,
    RetryConfig,
    StateAccessException,
    ValidationInputException,
    ValidationOutputException,
    custom_validate_call,
    node,
    retry_decorator,
)
from .graph import (
    END,
    START,
    CompiledGraph,
    Graph,
    GraphBranch,
    NodeMode,
    process_state,
)
from .stream import NoValue, StreamReader, concat_chunks, register_concat

__version__ = "0.1.0"

# Export list - 只暴露用户需要的公共接口
__all__ = [
    # 节点
    "Node",
    "node",
    "custom_validate_call",
    # 重试
    "RetryConfig",
    "retry_decorator",
    # 流
    "StreamReader",
    "NoValue",
    "concat_chunks",
    "register_concat",
    # 图
    "Graph",
    "GraphBranch",
    "CompiledGraph",
    "NodeMode",
    "START",
    "END",
    "process_state",
    # 异常类
    "LoopFlowException",
    "ValidationInputException",
    "ValidationOutputException",
    "NodeExecutionException",
    "NodeRetryExhaustedException",
    "GraphBuildException",
    "BranchRoutingException",
    "StateAccessException",
]
