"""
LLM服务

负责与大语言模型的交互，包括流式对话、独立的非流式调用和配置解析。
"""

import asyncio
import json
import logging
from typing import AsyncGenerator, Dict, List, Optional

import httpx
from openai import (
    APIConnectionError,
    APITimeoutError,
    InternalServerError,
    RateLimitError,
)

from ..core.config import Settings, get_settings
from ..core.constants import LLMConstants
from ..exceptions import LLMConfigurationError, LLMServiceError
from ..utils.llm_tool import ChatMessage, LLMClient, StreamCollectResult

logger = logging.getLogger(__name__)


class LLMService:
    """封装与大模型交互的所有逻辑。

    配置全部来自 Settings，不持有任何会话级状态，可以被多个生成会话共享。
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def model_name(self) -> str:
        return self.settings.openai_model_name

    # ------------------------------------------------------------------
    # 流式对话
    # ------------------------------------------------------------------
    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncGenerator[Dict[str, Optional[str]], None]:
        """
        流式获取LLM响应

        流式调用不做自动重试：已经推送给订阅者的增量无法撤回。

        Args:
            messages: 完整的消息列表（含历史）
            temperature: 温度参数，默认使用写作温度
            timeout: 超时时间，默认使用 LLM_TIMEOUT
            max_tokens: 最大token数

        Yields:
            Dict[str, str]: 包含 content、finish_reason（及可选 reasoning_content）的字典
        """
        config = self._resolve_llm_config()
        client = self._create_client(config)
        chat_messages = ChatMessage.from_list(messages)

        logger.info(
            "Streaming LLM response: model=%s messages=%d",
            config.get("model"),
            len(messages),
        )

        try:
            async for chunk in client.stream_chat(
                messages=chat_messages,
                model=config["model"],
                temperature=self.settings.llm_temp_writing if temperature is None else temperature,
                timeout=timeout or self.settings.llm_timeout,
                max_tokens=max_tokens,
            ):
                yield chunk
        except (httpx.RemoteProtocolError, httpx.ReadTimeout, APIConnectionError, APITimeoutError) as exc:
            logger.error(
                "LLM stream network error: model=%s error_type=%s",
                config.get("model"),
                type(exc).__name__,
            )
            raise LLMServiceError(f"流式响应中断: {type(exc).__name__}: {exc}", config.get("model")) from exc
        except Exception as exc:
            logger.error(
                "LLM stream error: model=%s error=%s",
                config.get("model"),
                exc,
            )
            raise LLMServiceError(f"流式响应失败: {exc}", config.get("model")) from exc

    # ------------------------------------------------------------------
    # 非流式调用
    # ------------------------------------------------------------------
    async def get_llm_response(
        self,
        system_prompt: str,
        conversation_history: List[Dict[str, str]],
        *,
        temperature: Optional[float] = None,
        timeout: float = LLMConstants.DEFAULT_TIMEOUT,
        max_tokens: Optional[int] = None,
        max_retries: Optional[int] = None,
        allow_truncated: bool = False,
    ) -> str:
        """
        获取LLM响应（非流式，独立于任何会话的对话历史）

        Args:
            system_prompt: 系统提示词
            conversation_history: 对话历史
            temperature: 温度参数，默认使用评估温度
            timeout: 超时时间
            max_tokens: 最大token数
            max_retries: 网络错误的最大重试次数，默认使用 LLM_MAX_RETRIES
            allow_truncated: 为 True 时 finish_reason=length 的非空回答照常返回

        Returns:
            LLM响应文本
        """
        messages = [{"role": "system", "content": system_prompt}, *conversation_history]
        return await self._stream_and_collect(
            messages,
            temperature=self.settings.llm_temp_evaluation if temperature is None else temperature,
            timeout=timeout,
            max_tokens=max_tokens,
            max_retries=self.settings.llm_max_retries if max_retries is None else max_retries,
            allow_truncated=allow_truncated,
        )

    async def _stream_and_collect(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float,
        timeout: float,
        max_tokens: Optional[int] = None,
        max_retries: int = LLMConstants.MAX_RETRIES,
        allow_truncated: bool = False,
    ) -> str:
        """
        流式收集LLM响应，支持自动重试网络错误

        Returns:
            收集到的响应文本
        """
        config = self._resolve_llm_config()

        for attempt in range(max_retries + 1):
            try:
                client = self._create_client(config)
                chat_messages = ChatMessage.from_list(messages)

                if attempt > 0:
                    logger.warning(
                        "Retrying LLM request: attempt=%d/%d model=%s",
                        attempt + 1,
                        max_retries + 1,
                        config.get("model"),
                    )
                else:
                    logger.info(
                        "Collecting LLM response: model=%s messages=%d max_tokens=%s",
                        config.get("model"),
                        len(messages),
                        max_tokens,
                    )

                result = await client.stream_and_collect(
                    messages=chat_messages,
                    model=config["model"],
                    temperature=temperature,
                    timeout=timeout,
                    max_tokens=max_tokens,
                )

                logger.debug(
                    "LLM response collected: model=%s finish_reason=%s chunks=%d preview=%s",
                    config.get("model"),
                    result.finish_reason,
                    result.chunk_count,
                    result.content[:500],
                )

                self._validate_llm_response(result, config, allow_truncated=allow_truncated)

                logger.info(
                    "LLM response success: model=%s chars=%d chunks=%d attempts=%d",
                    config.get("model"),
                    len(result.content),
                    result.chunk_count,
                    attempt + 1,
                )
                return result.content

            except LLMServiceError:
                raise

            except InternalServerError as exc:
                default_detail = "AI 服务内部错误，请稍后重试"
                detail = self._extract_error_detail(exc, default_detail)
                logger.error(
                    "LLM internal error: model=%s attempt=%d/%d detail=%s",
                    config.get("model"),
                    attempt + 1,
                    max_retries + 1,
                    detail,
                    exc_info=exc,
                )
                raise LLMServiceError(detail, config.get("model")) from exc

            except (httpx.RemoteProtocolError, httpx.ReadTimeout, APIConnectionError, APITimeoutError) as exc:
                if isinstance(exc, httpx.RemoteProtocolError):
                    detail = "AI 服务连接被意外中断"
                elif isinstance(exc, (httpx.ReadTimeout, APITimeoutError)):
                    detail = "AI 服务响应超时"
                else:
                    detail = "无法连接到 AI 服务"

                logger.error(
                    "LLM request failed: model=%s attempt=%d/%d detail=%s",
                    config.get("model"),
                    attempt + 1,
                    max_retries + 1,
                    detail,
                    exc_info=exc,
                )

                if attempt < max_retries:
                    wait_time = 2 ** (attempt + 1)
                    logger.info("Waiting %d seconds before retry...", wait_time)
                    await asyncio.sleep(wait_time)
                    continue

                raise LLMServiceError(
                    f"{detail}，请稍后重试（已尝试 {max_retries + 1} 次）",
                    config.get("model")
                ) from exc

            except RateLimitError as exc:
                logger.warning(
                    "LLM rate limited: model=%s attempt=%d/%d",
                    config.get("model"),
                    attempt + 1,
                    max_retries + 1,
                    exc_info=exc,
                )

                if attempt < max_retries:
                    wait_time = 10 * (attempt + 1)
                    logger.info("Rate limited, waiting %d seconds before retry...", wait_time)
                    await asyncio.sleep(wait_time)
                    continue

                raise LLMServiceError(
                    f"AI 服务请求过于频繁，请稍后重试（已尝试 {max_retries + 1} 次）",
                    config.get("model")
                ) from exc

            except Exception as exc:
                logger.critical(
                    "LLM unexpected error: model=%s attempt=%d/%d error_type=%s error=%s",
                    config.get("model"),
                    attempt + 1,
                    max_retries + 1,
                    type(exc).__name__,
                    str(exc),
                    exc_info=True,
                )
                raise LLMServiceError(
                    f"AI 服务发生意外错误: {type(exc).__name__}: {exc}",
                    config.get("model")
                ) from exc

        # 循环内所有分支都会 return、raise 或 continue
        raise LLMServiceError("LLM 调用未能完成", config.get("model"))

    def _validate_llm_response(
        self,
        result: StreamCollectResult,
        config: Dict[str, Optional[str]],
        *,
        allow_truncated: bool = False,
    ) -> None:
        """验证LLM响应结果"""
        if result.finish_reason == "length":
            logger.warning("LLM response truncated: model=%s chars=%d", config.get("model"), len(result.content))
            if allow_truncated and result.content:
                return
            raise LLMServiceError("AI 响应被截断，请缩短输入或调整参数", config.get("model"))

        if not result.content:
            logger.error(
                "LLM returned empty response: model=%s chunks=%d",
                config.get("model"),
                result.chunk_count,
            )
            raise LLMServiceError("AI 未返回有效内容", config.get("model"))

    def _extract_error_detail(self, exc: InternalServerError, default_detail: str) -> str:
        """从InternalServerError中提取错误详情"""
        response = getattr(exc, "response", None)
        if response is not None:
            try:
                payload = response.json()
                error_data = payload.get("error", {}) if isinstance(payload, dict) else {}
                return error_data.get("message_zh") or error_data.get("message") or default_detail
            except (json.JSONDecodeError, ValueError, AttributeError):
                return str(exc) or default_detail
        return str(exc) or default_detail

    # ------------------------------------------------------------------
    # 配置解析
    # ------------------------------------------------------------------
    def _resolve_llm_config(self) -> Dict[str, Optional[str]]:
        """解析LLM配置"""
        if not self.settings.openai_api_key:
            raise LLMConfigurationError("未配置 OPENAI_API_KEY")

        base_url = str(self.settings.openai_base_url) if self.settings.openai_base_url else None
        return {
            "api_key": self.settings.openai_api_key,
            "base_url": base_url,
            "model": self.settings.openai_model_name,
        }

    @staticmethod
    def _create_client(config: Dict[str, Optional[str]]) -> LLMClient:
        return LLMClient(api_key=config["api_key"], base_url=config.get("base_url"))
