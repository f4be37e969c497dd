# -*- coding: utf-8 -*-
"""OpenAI 兼容接口的流式调用封装。

写作轮次直接消费 stream_chat 的增量；完成度评估使用 stream_and_collect 拿到整段回答。
通过 base_url 切换到任何兼容 Chat Completions 的服务。
"""

import logging
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Dict, List, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

StreamChunk = Dict[str, Optional[str]]


@dataclass
class ChatMessage:
    role: str
    content: str

    @classmethod
    def from_list(cls, messages: List[Dict[str, str]]) -> List["ChatMessage"]:
        return [cls(role=msg["role"], content=msg["content"]) for msg in messages]


@dataclass
class StreamCollectResult:
    """一次完整调用的收集结果"""
    content: str
    finish_reason: Optional[str]
    chunk_count: int


class LLMClient:
    """单个 API Key + base_url 对应的异步客户端"""

    def __init__(self, api_key: str, base_url: Optional[str] = None):
        if not api_key:
            raise ValueError("缺少 OPENAI_API_KEY 配置，请在环境变量或 .env 中补全。")
        # 重试由 LLMService 控制，SDK 自身不重试
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    async def stream_chat(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: float = 120.0,
    ) -> AsyncGenerator[StreamChunk, None]:
        """
        发起流式 Chat Completions 请求

        Yields:
            每个片段一个字典：content、finish_reason，
            模型返回推理内容时附带 reasoning_content
        """
        payload = {
            "model": model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
            "stream": True,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        request_id = uuid.uuid4().hex[:8]
        content_chars = 0
        logger.info(
            "OpenAI API请求[%s]: base_url=%s, model=%s, messages=%d",
            request_id, self._client.base_url, model, len(messages),
        )

        try:
            stream = await self._client.with_options(timeout=float(timeout)).chat.completions.create(**payload)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                item: StreamChunk = {
                    "content": choice.delta.content,
                    "finish_reason": choice.finish_reason,
                }
                # DeepSeek R1 一类模型额外返回 reasoning_content
                reasoning = getattr(choice.delta, "reasoning_content", None)
                if reasoning:
                    item["reasoning_content"] = reasoning
                if choice.delta.content:
                    content_chars += len(choice.delta.content)
                yield item
        except Exception as exc:
            logger.error(
                "OpenAI API请求失败[%s]: model=%s, error_type=%s, error=%s",
                request_id, model, type(exc).__name__, exc,
                exc_info=True,
            )
            raise

        logger.info("OpenAI API成功[%s]: chars=%d", request_id, content_chars)

    async def stream_and_collect(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: float = 120.0,
    ) -> StreamCollectResult:
        """流式请求并拼接出完整回答，推理内容不计入结果"""
        parts: List[str] = []
        finish_reason: Optional[str] = None
        chunk_count = 0

        async for chunk in self.stream_chat(
            messages,
            model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        ):
            chunk_count += 1
            if chunk.get("content"):
                parts.append(chunk["content"])
            if chunk.get("finish_reason"):
                finish_reason = chunk["finish_reason"]

        return StreamCollectResult(
            content="".join(parts),
            finish_reason=finish_reason,
            chunk_count=chunk_count,
        )
