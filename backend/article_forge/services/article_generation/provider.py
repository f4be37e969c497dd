"""
对话模型提供方

把模型视为不透明的多轮文本提供方：输入完整的对话历史，
流式返回增量文本，最后给出权威的对话历史（可能包含提供方自行追加的隐藏轮次）。
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from ..llm_service import LLMService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationTurn:
    """
    对话历史中的一轮

    Attributes:
        role: user / assistant
        content: 文本内容
        opaque: 是否为提供方追加的隐藏轮次（如推理过程），编排层原样保留，不解析也不重排
        payload: 提供方附带的原始数据
    """
    role: str
    content: str
    opaque: bool = False
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderChunk:
    """提供方流式输出的单个片段：要么是增量文本，要么是最终完成信号"""
    delta: Optional[str] = None
    done: bool = False
    history: Optional[List[ConversationTurn]] = None
    text: Optional[str] = None

    @classmethod
    def text_delta(cls, delta: str) -> "ProviderChunk":
        return cls(delta=delta)

    @classmethod
    def final(cls, history: List[ConversationTurn], text: str) -> "ProviderChunk":
        return cls(done=True, history=list(history), text=text)


class ConversationProvider(ABC):
    """对话模型提供方接口"""

    @abstractmethod
    def stream(self, history: List[ConversationTurn]) -> AsyncIterator[ProviderChunk]:
        """
        发送完整历史并流式返回

        实现必须以一个 done=True 的片段结束，携带权威的完整对话历史和最终回复文本。
        """


class OpenAIConversationProvider(ConversationProvider):
    """基于 LLMService.stream_chat 的提供方实现"""

    def __init__(
        self,
        llm_service: LLMService,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self._llm_service = llm_service
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def stream(self, history: List[ConversationTurn]) -> AsyncIterator[ProviderChunk]:
        # 隐藏轮次只在本地保留，不回传给 Chat Completions 接口
        messages = [
            {"role": turn.role, "content": turn.content}
            for turn in history
            if not turn.opaque
        ]

        content_parts: List[str] = []
        reasoning_parts: List[str] = []
        finish_reason: Optional[str] = None

        async for chunk in self._llm_service.stream_chat(
            messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        ):
            if chunk.get("reasoning_content"):
                reasoning_parts.append(chunk["reasoning_content"])
            content = chunk.get("content")
            if content:
                content_parts.append(content)
                yield ProviderChunk.text_delta(content)
            if chunk.get("finish_reason"):
                finish_reason = chunk["finish_reason"]

        if finish_reason == "length":
            logger.warning("模型输出被截断 (finish_reason=length)，messages=%d", len(messages))
        elif finish_reason is None:
            logger.warning("模型流结束但未返回 finish_reason，messages=%d", len(messages))

        text = "".join(content_parts)
        canonical = list(history)
        if reasoning_parts:
            canonical.append(ConversationTurn(
                role="assistant",
                content="".join(reasoning_parts),
                opaque=True,
                payload={"kind": "reasoning"},
            ))
        canonical.append(ConversationTurn(
            role="assistant",
            content=text,
            payload={"finish_reason": finish_reason},
        ))
        yield ProviderChunk.final(canonical, text)
