"""One-shot chunk streams.

节点之间传递的输出都是 ``StreamReader``：一次性、不可重放的异步数据块序列。
读取方负责关闭；``copy`` 把一个源流扇出给多个读取方，最后一个副本关闭时才释放源流。
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

logger = logging.getLogger("loopflow.stream")


class NoValue(Exception):
    """转换函数抛出此异常表示丢弃当前数据块（不是错误）"""


# chunk类型 -> 合并函数
_concat_funcs: dict[type, Callable[[list[Any]], Any]] = {}


def register_concat(chunk_type: type, func: Callable[[list[Any]], Any]) -> None:
    """注册某种数据块类型的合并函数，供 ``concat_chunks`` 使用"""
    _concat_funcs[chunk_type] = func


def concat_chunks(chunks: list[Any]) -> Any:
    """把流中的多个数据块合并为一个完整值

    列表按位置合并（``None`` 占位的槽位会被跳过），其他类型查找已注册的合并函数。
    """
    if not chunks:
        raise ValueError("cannot concat an empty chunk list")
    if len(chunks) == 1:
        return chunks[0]

    first = chunks[0]
    if isinstance(first, list):
        return _concat_lists(chunks)

    for chunk_type, func in _concat_funcs.items():
        if isinstance(first, chunk_type):
            return func(chunks)

    raise TypeError(f"No concat function registered for {type(first).__name__}")


def _concat_lists(chunks: list[list[Any]]) -> list[Any]:
    size = max(len(chunk) for chunk in chunks)
    merged: list[Any] = []
    for i in range(size):
        parts = [chunk[i] for chunk in chunks if i < len(chunk) and chunk[i] is not None]
        merged.append(concat_chunks(parts) if parts else None)
    return merged


class StreamReader:
    """一次性异步数据块流

    Example:
        ```python
        async with StreamReader.from_iterable([1, 2, 3]) as stream:
            async for chunk in stream:
                ...
        ```
    """

    def __init__(self, source: AsyncIterator[Any]):
        self._source = source
        self._closed = False

    @classmethod
    def from_iterable(cls, items: Iterable[Any]) -> "StreamReader":
        """由已物化的数据块构造流"""

        async def _gen():
            for item in items:
                yield item

        return cls(_gen())

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "StreamReader":
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        return await self._source.__anext__()

    async def aclose(self) -> None:
        """释放底层资源，可重复调用"""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "StreamReader":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def collect(self) -> list[Any]:
        """读完所有数据块并关闭流"""
        async with self:
            return [chunk async for chunk in self]

    async def concat(self) -> Any:
        """读完并合并为单个值"""
        return concat_chunks(await self.collect())

    def convert(self, func: Callable[[Any], Any]) -> "StreamReader":
        """逐块转换；``func`` 抛出 ``NoValue`` 的块被丢弃"""

        async def _gen():
            async with self:
                async for chunk in self:
                    try:
                        converted = func(chunk)
                    except NoValue:
                        continue
                    yield converted

        return StreamReader(_gen())

    def copy(self, n: int) -> list["StreamReader"]:
        """扇出为n个独立读取的副本；调用后不应再直接读取原流"""
        if n < 2:
            return [self]
        tee = _Tee(self, n)
        return [StreamReader(_TeeIterator(tee)) for _ in range(n)]


class _Tee:
    """多个副本共享的读取缓冲区"""

    def __init__(self, parent: StreamReader, n: int):
        self._parent = parent
        self._buffer: list[Any] = []
        self._exhausted = False
        self._error: BaseException | None = None
        self._open = n
        self._lock = asyncio.Lock()

    async def get(self, index: int) -> Any:
        async with self._lock:
            if index < len(self._buffer):
                return self._buffer[index]
            if self._error is not None:
                raise self._error
            if self._exhausted:
                raise StopAsyncIteration
            try:
                chunk = await self._parent.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                raise
            except Exception as e:
                self._error = e
                raise
            self._buffer.append(chunk)
            return chunk

    async def release(self) -> None:
        self._open -= 1
        if self._open == 0:
            logger.debug("All stream copies released, closing source")
            await self._parent.aclose()


class _TeeIterator:
    def __init__(self, tee: _Tee):
        self._tee = tee
        self._position = 0
        self._released = False

    def __aiter__(self) -> "_TeeIterator":
        return self

    async def __anext__(self) -> Any:
        chunk = await self._tee.get(self._position)
        self._position += 1
        return chunk

    async def aclose(self) -> None:
        if not self._released:
            self._released = True
            await self._tee.release()
