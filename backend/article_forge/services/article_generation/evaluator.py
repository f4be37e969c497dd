"""
完成度评估器

辅助判断草稿是否已经写完：一次独立的模型调用，不进入主对话历史。
评估结果只是建议，调用方负责处理异常并视为未完成。
"""

import logging
from enum import Enum
from typing import Optional, Protocol

from ...core.constants import LLMConstants
from ...utils.text_utils import truncate_head
from ..llm_service import LLMService
from .prompts import EVALUATION_SYSTEM_PROMPT, build_evaluation_prompt

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    YES = "YES"
    NO = "NO"


class DraftEvaluator(Protocol):
    async def evaluate(self, draft: str) -> Verdict:
        ...


def parse_verdict(answer: Optional[str]) -> Verdict:
    """只有以 YES 开头的回答视为完成，其余一律为 NO"""
    normalized = (answer or "").strip().lstrip("*_`\"' ").upper()
    return Verdict.YES if normalized.startswith("YES") else Verdict.NO


class CompletionEvaluator:
    """以规划阶段的计划为依据，判断草稿结构是否完整"""

    def __init__(
        self,
        llm_service: LLMService,
        plan: str,
        *,
        max_draft_chars: int = LLMConstants.EVALUATION_DRAFT_MAX_CHARS,
    ):
        self._llm_service = llm_service
        self._plan = plan
        self._max_draft_chars = max_draft_chars

    async def evaluate(self, draft: str) -> Verdict:
        prompt = build_evaluation_prompt(self._plan, truncate_head(draft, self._max_draft_chars))
        answer = await self._llm_service.get_llm_response(
            system_prompt=EVALUATION_SYSTEM_PROMPT,
            conversation_history=[{"role": "user", "content": prompt}],
            timeout=LLMConstants.EVALUATION_TIMEOUT,
            max_tokens=LLMConstants.EVALUATION_MAX_TOKENS,
            allow_truncated=True,
        )
        verdict = parse_verdict(answer)
        logger.info("完成度评估结果: %s (draft_chars=%d)", verdict.value, len(draft))
        return verdict
