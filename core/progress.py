"""
进度事件

抓取引擎向展示层发送的有序事件流：Loading(text) / Finished(snapshot) / Error(cause)。
"""
import asyncio
from typing import Union

from pydantic import BaseModel, ConfigDict

from core.models import CrawlAggregate


class Loading(BaseModel):
    """某个阶段开始"""
    text: str


class Finished(BaseModel):
    """抓取完成，携带最终聚合体快照"""
    snapshot: CrawlAggregate


class Error(BaseModel):
    """抓取中止"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    cause: BaseException

    @property
    def message(self) -> str:
        return f"{type(self.cause).__name__}: {self.cause}"


ProgressEvent = Union[Loading, Finished, Error]


class ProgressChannelClosed(Exception):
    """接收方已关闭"""


class ProgressChannel:
    """
    进度通道（无界 asyncio.Queue）

    Finished / Error 是终止事件，迭代在收到它们之后结束。

    Example:
        async for event in channel:
            if isinstance(event, Loading):
                print(event.text)
    """

    def __init__(self):
        self._queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()
        self._closed = False

    async def send(self, event: ProgressEvent):
        if self._closed:
            raise ProgressChannelClosed(f"progress receiver is gone, dropped {type(event).__name__}")
        await self._queue.put(event)

    async def receive(self) -> ProgressEvent:
        return await self._queue.get()

    def close(self):
        """接收方调用：之后的 send 会抛出 ProgressChannelClosed"""
        self._closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            event = await self.receive()
            yield event
            if isinstance(event, (Finished, Error)):
                return
