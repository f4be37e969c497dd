"""
对话驱动器

每个生成会话独占一个驱动器，维护该会话的完整对话历史。
历史只在提供方给出完成信号后整体替换，读取到的永远是完整一致的轮次列表。
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from ...exceptions import ConversationBusyError, LLMServiceError
from .provider import ConversationProvider, ConversationTurn

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], Awaitable[None]]


class ConversationDriver:
    """单会话的顺序对话线程，同一时刻只允许一个未完成的请求"""

    def __init__(
        self,
        session_id: str,
        provider: ConversationProvider,
        history: Optional[List[ConversationTurn]] = None,
    ):
        self.session_id = session_id
        self._provider = provider
        self._history: List[ConversationTurn] = list(history or [])
        self._lock = asyncio.Lock()
        self._last_text: Optional[str] = None

    @property
    def history(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._history)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def stream(self, user_text: str) -> AsyncIterator[str]:
        """
        发送一轮用户消息并流式返回增量文本

        提供方失败时异常原样向上抛出，历史保持不变。

        Raises:
            ConversationBusyError: 已有未完成的请求
            LLMServiceError: 流在完成信号之前结束
        """
        if self._lock.locked():
            raise ConversationBusyError(self.session_id)

        async with self._lock:
            outgoing = [*self._history, ConversationTurn(role="user", content=user_text)]
            final = None

            async for chunk in self._provider.stream(outgoing):
                if chunk.done:
                    final = chunk
                    continue
                if final is None and chunk.delta:
                    yield chunk.delta

            if final is None or final.history is None:
                raise LLMServiceError("模型流在完成信号之前结束")

            self._history = list(final.history)
            self._last_text = final.text or ""
            logger.debug(
                "对话轮次完成: session_id=%s turns=%d chars=%d",
                self.session_id, len(self._history), len(self._last_text),
            )

    async def send(self, user_text: str, on_delta: Optional[DeltaCallback] = None) -> str:
        """发送一轮用户消息，等待流完全结束后返回最终回复文本"""
        async for delta in self.stream(user_text):
            if on_delta is not None:
                await on_delta(delta)
        return self._last_text or ""
