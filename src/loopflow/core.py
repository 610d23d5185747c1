"""Nodes, retry and validation.

``@node`` turns a function into a graph ``Node``. The function gets, in order:

- dependency injection from a wired dependency-injector container (``inject``);
- pydantic validation of its arguments and, when annotated, its return value;
- stream ownership: a function whose first parameter is a ``StreamReader`` and
  which returns something other than a stream (a branch condition, a reducer)
  has that stream closed once it returns, whether it read it to the end or not;
- retry with backoff, for coroutine functions only.
"""

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dependency_injector.wiring import inject
from pydantic import ConfigDict, TypeAdapter, ValidationError, validate_call

from .stream import StreamReader

logger = logging.getLogger("loopflow")


# ==================== 异常 ====================
class LoopFlowException(Exception):
    """loopflow异常基类，``node_name`` 标明出错的节点"""

    retryable = False

    def __init__(self, message: str, node_name: str | None = None, **context: Any) -> None:
        self.node_name = node_name
        self.context = context
        super().__init__(message)


class NodeValidationException(LoopFlowException):
    """pydantic校验失败，原始 ``ValidationError`` 保存在 ``validation_error``"""

    def __init__(
        self,
        message: str,
        validation_error: ValidationError | None = None,
        node_name: str | None = None,
    ) -> None:
        self.validation_error = validation_error
        super().__init__(message, node_name)


class ValidationInputException(NodeValidationException):
    """参数不符合函数签名"""


class ValidationOutputException(NodeValidationException):
    """返回值不符合返回类型注解"""


class NodeExecutionException(LoopFlowException):
    """节点执行失败，``original_exception`` 为节点函数抛出的异常"""

    def __init__(
        self,
        message: str,
        node_name: str | None = None,
        original_exception: BaseException | None = None,
        **context: Any,
    ) -> None:
        self.original_exception = original_exception
        super().__init__(message, node_name, **context)


class NodeRetryExhaustedException(NodeExecutionException):
    def __init__(
        self,
        message: str,
        node_name: str | None = None,
        retry_count: int | None = None,
        last_exception: BaseException | None = None,
    ) -> None:
        self.retry_count = retry_count
        self.last_exception = last_exception
        super().__init__(message, node_name, original_exception=last_exception)


class GraphBuildException(LoopFlowException):
    """图结构非法：节点/边/分支配置错误，在构建或编译阶段抛出"""


class BranchRoutingException(LoopFlowException):
    """分支条件返回了未声明的目标节点"""


class StateAccessException(LoopFlowException):
    """在运行上下文之外访问本地状态"""


# ==================== 重试 ====================
@dataclass
class RetryConfig:
    """第 n 次重试前等待 ``retry_delay * backoff_factor ** n`` 秒，最多 ``max_delay`` 秒"""

    retry_count: int = 3
    retry_delay: float = 1.0
    exception_types: tuple[type[BaseException], ...] = (Exception,)
    backoff_factor: float = 1.0
    max_delay: float = 60.0

    def should_retry(self, exception: BaseException) -> bool:
        # 异常自身的retryable标记优先于exception_types
        retryable = getattr(exception, "retryable", None)
        if retryable is not None:
            return bool(retryable)
        return isinstance(exception, self.exception_types)

    def get_delay(self, attempt: int) -> float:
        return min(self.retry_delay * self.backoff_factor**attempt, self.max_delay)


def retry_decorator(
    config: RetryConfig, node_name: str | None = None
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """为协程函数加上重试

    不可重试的异常包装为 ``NodeExecutionException``，重试耗尽后抛出
    ``NodeRetryExhaustedException``；原始异常都保存在 ``original_exception``。
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"retry_decorator needs a coroutine function, got {func!r}")
        func_name = node_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not config.should_retry(e):
                        raise NodeExecutionException(
                            f"节点 {func_name} 执行失败，异常类型不支持重试: {type(e).__name__}",
                            node_name=func_name,
                            original_exception=e,
                        ) from e
                    if attempt >= config.retry_count:
                        raise NodeRetryExhaustedException(
                            f"节点 {func_name} 重试次数耗尽，最后异常: {type(e).__name__}: {e}",
                            node_name=func_name,
                            retry_count=config.retry_count,
                            last_exception=e,
                        ) from e
                    delay = config.get_delay(attempt)
                    attempt += 1
                    logger.warning(
                        f"节点 {func_name} 第 {attempt} 次尝试失败: {e}，{delay:.2f}秒后重试"
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


# ==================== 校验 ====================
def custom_validate_call(
    validate_return: bool = True,
    config: ConfigDict | None = None,
    node_name: str | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """pydantic ``validate_call``，但把输入和输出的校验失败区分为两种异常

    流等任意类型按 ``isinstance`` 校验。
    """
    config = config or ConfigDict(arbitrary_types_allowed=True)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func_name = node_name or func.__name__
        checked = validate_call(validate_return=False, config=config)(func)

        annotation = inspect.signature(func).return_annotation
        adapter = None
        if validate_return and annotation is not inspect.Signature.empty:
            adapter = TypeAdapter(annotation, config=config)

        def check_result(result: Any) -> Any:
            if adapter is not None:
                try:
                    adapter.validate_python(result)
                except ValidationError as e:
                    raise ValidationOutputException(
                        f"返回值验证失败: {e}", e, func_name
                    ) from e
            return result

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    result = await checked(*args, **kwargs)
                except ValidationError as e:
                    raise ValidationInputException(f"输入参数验证失败: {e}", e, func_name) from e
                return check_result(result)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                result = checked(*args, **kwargs)
            except ValidationError as e:
                raise ValidationInputException(f"输入参数验证失败: {e}", e, func_name) from e
            return check_result(result)

        return sync_wrapper

    return decorator


# ==================== 节点 ====================
def _consumes_stream(func: Callable[..., Any]) -> bool:
    """第一个参数是流且返回值不是流：函数读完（或放弃）输入流后即可关闭它"""
    signature = inspect.signature(func)
    params = list(signature.parameters.values())
    return (
        bool(params)
        and params[0].annotation is StreamReader
        and signature.return_annotation is not StreamReader
    )


def _close_input_stream(func: Callable[..., Any]) -> Callable[..., Any]:
    """协程函数返回或抛出异常后关闭作为第一个参数传入的流"""

    @functools.wraps(func)
    async def wrapper(stream: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(stream, *args, **kwargs)
        finally:
            # 校验失败时收到的可能不是流
            if isinstance(stream, StreamReader):
                await stream.aclose()

    return wrapper


class Node:
    """图中执行的具名可调用单元

    调用原样转发：协程函数返回协程，异步生成器函数返回异步迭代器，由图负责
    ``await`` 或迭代。
    """

    def __init__(self, func: Callable[..., Any], name: str):
        self.func = func
        self.name = name

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)

    def __repr__(self) -> str:
        return f"Node(name='{self.name}')"


def node(
    func: Callable[..., Any] | None = None,
    *,
    retry_count: int = 3,
    name: str | None = None,
    retry_delay: float = 1.0,
    exception_types: tuple[type[BaseException], ...] = (Exception,),
    backoff_factor: float = 1.0,
    max_delay: float = 60.0,
    enable_retry: bool = True,
) -> Node | Callable[[Callable[..., Any]], Node]:
    """
    Decorator: build a ``Node`` with injection, validation, stream ownership and retry.

    Usage Examples:
    ```python
    @node(retry_count=3, retry_delay=0.5)
    async def fetch_data(data_id: str) -> dict:
        ...

    # Branch condition: the stream is closed once the function returns,
    # so it can stop reading at the first chunk that decides the route.
    @node(enable_retry=False)
    async def route(stream: StreamReader) -> str:
        async for chunk in stream:
            if chunk.tool_calls:
                return "tools"
        return END
    ```

    Args:
        func: Function to be decorated
        name: Node identifier name, defaults to the function name
        retry_count: Maximum retry attempts (default: 3)
        retry_delay: Base retry delay in seconds (default: 1.0)
        exception_types: Exception types to retry (default: (Exception,))
        backoff_factor: Backoff multiplier for exponential backoff (default: 1.0)
        max_delay: Maximum delay time in seconds (default: 60.0)
        enable_retry: Enable/disable retry (default: True). Only coroutine
            functions are retried; graph nodes whose failures must surface
            unchanged pass ``False``.

    Async generator functions are not supported here; wrap them with
    ``Node(...)`` directly.
    """
    retry_config = RetryConfig(
        retry_count, retry_delay, exception_types, backoff_factor, max_delay
    )

    def decorator(f: Callable[..., Any]) -> Node:
        node_name = name or f.__name__
        is_coroutine = inspect.iscoroutinefunction(f)

        decorators = [
            inject,
            custom_validate_call(node_name=node_name),
        ]
        if is_coroutine and _consumes_stream(f):
            decorators.append(_close_input_stream)
        if is_coroutine and enable_retry:
            decorators.append(retry_decorator(retry_config, node_name=node_name))

        return Node(functools.reduce(lambda fn, deco: deco(fn), decorators, f), node_name)

    # 支持 @node 与 @node(...) 两种写法
    if func is None:
        return decorator
    return decorator(func)
