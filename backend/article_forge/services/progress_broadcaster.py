"""
进度广播

把生成过程中的实时事件推送给订阅者。每个会话最多一个订阅者，
推送是尽力而为的：写入失败的订阅者会被直接移除，不影响生成流程。
会话的真实状态始终以会话存储为准。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional

from ..schemas.events import ArticleEvent

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """事件接收端抽象，核心编排逻辑不依赖任何具体传输方式"""

    @abstractmethod
    async def send(self, event: ArticleEvent) -> None:
        ...

    async def close(self) -> None:
        """订阅被移除时调用，默认无操作"""


class QueueEventSink(EventSink):
    """基于 asyncio.Queue 的接收端，供 SSE 端点消费

    关闭时放入 None 作为结束标记。
    """

    def __init__(self, maxsize: int = 0):
        self.queue: "asyncio.Queue[Optional[ArticleEvent]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def send(self, event: ArticleEvent) -> None:
        if self.closed:
            raise RuntimeError("事件队列已关闭")
        # 不做背压：队列满时直接抛出，由广播器移除该订阅者
        self.queue.put_nowait(event)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            logger.debug("事件队列已满，结束标记未写入")


class CallbackEventSink(EventSink):
    """包装一个异步回调函数"""

    def __init__(self, callback: Callable[[ArticleEvent], Awaitable[None]]):
        self._callback = callback

    async def send(self, event: ArticleEvent) -> None:
        await self._callback(event)


class ProgressBroadcaster:
    """会话 id 到订阅者的映射，由锁保护以支持并发会话"""

    def __init__(self):
        self._sinks: Dict[str, EventSink] = {}
        self._lock = asyncio.Lock()

    async def register(self, session_id: str, sink: EventSink) -> None:
        """注册订阅者，已有订阅者会被替换并关闭"""
        async with self._lock:
            previous = self._sinks.get(session_id)
            self._sinks[session_id] = sink
        if previous is not None and previous is not sink:
            await self._close_quietly(session_id, previous)
        logger.debug("注册事件订阅: session_id=%s sink=%s", session_id, type(sink).__name__)

    async def unregister(self, session_id: str, sink: Optional[EventSink] = None) -> None:
        """
        移除订阅者

        Args:
            session_id: 会话ID
            sink: 指定时仅当当前订阅者就是它才移除，避免误删后来注册的订阅者
        """
        async with self._lock:
            current = self._sinks.get(session_id)
            if current is None or (sink is not None and current is not sink):
                return
            del self._sinks[session_id]
        await self._close_quietly(session_id, current)
        logger.debug("移除事件订阅: session_id=%s", session_id)

    async def push(self, session_id: str, event: ArticleEvent) -> None:
        """推送事件，没有订阅者时直接丢弃"""
        async with self._lock:
            sink = self._sinks.get(session_id)
        if sink is None:
            return

        try:
            await sink.send(event)
        except Exception as exc:
            logger.warning(
                "事件推送失败，移除订阅者: session_id=%s event=%s error=%s",
                session_id, event.type, exc,
            )
            await self.unregister(session_id, sink)

    def has_subscriber(self, session_id: str) -> bool:
        return session_id in self._sinks

    async def close_all(self) -> None:
        """应用关闭时移除全部订阅者"""
        async with self._lock:
            sinks = list(self._sinks.items())
            self._sinks.clear()
        for session_id, sink in sinks:
            await self._close_quietly(session_id, sink)

    @staticmethod
    async def _close_quietly(session_id: str, sink: EventSink) -> None:
        try:
            await sink.close()
        except Exception as exc:
            logger.debug("关闭订阅者失败: session_id=%s error=%s", session_id, exc)
