"""
提示词编排状态机

显式的阶段枚举 + 每阶段一个处理函数 + 唯一的状态转换表：

    PLANNING -> TITLE_INTRO -> WRITING_LOOP <-> CHECKING_COMPLETION
                     |              |
                     +-----> COMPLETED <-----+

完成标记、完成度评估、迭代上限三种终止条件分别对应独立的 Outcome，
可以单独测试。
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional

from ...core.constants import ArticleConstants, ExtractionMethod
from ...exceptions import InvalidStateTransitionError
from ...schemas.events import (
    PhaseEvent,
    SectionCompletedEvent,
    TextDeltaEvent,
    WarningEvent,
)
from ...utils.exception_helpers import log_exception
from ...utils.text_utils import count_words, truncate_preview
from ..progress_broadcaster import ProgressBroadcaster
from .conversation import ConversationDriver
from .evaluator import DraftEvaluator, Verdict
from .extractor import ParseKind, estimate_section_count, parse
from .prompts import CONTINUE_PROMPT, TITLE_INTRO_PROMPT, build_planning_prompt
from .safety import IterationGuard

if TYPE_CHECKING:
    from ..session_store import SessionStore

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    PLANNING = "planning"
    TITLE_INTRO = "title-intro"
    WRITING_LOOP = "writing-loop"
    CHECKING_COMPLETION = "checking-completion"
    COMPLETED = "completed"


class Outcome(str, Enum):
    PLANNED = "planned"
    SECTION_ADDED = "section-added"
    NOTHING_ADDED = "nothing-added"
    SENTINEL = "sentinel"
    CAP_REACHED = "cap-reached"
    EVALUATE = "evaluate"
    VERDICT_YES = "verdict-yes"
    VERDICT_NO = "verdict-no"


TRANSITIONS: Dict[tuple, Phase] = {
    (Phase.PLANNING, Outcome.PLANNED): Phase.TITLE_INTRO,
    (Phase.TITLE_INTRO, Outcome.SECTION_ADDED): Phase.WRITING_LOOP,
    (Phase.TITLE_INTRO, Outcome.NOTHING_ADDED): Phase.WRITING_LOOP,
    (Phase.TITLE_INTRO, Outcome.SENTINEL): Phase.COMPLETED,
    (Phase.WRITING_LOOP, Outcome.SECTION_ADDED): Phase.WRITING_LOOP,
    (Phase.WRITING_LOOP, Outcome.NOTHING_ADDED): Phase.WRITING_LOOP,
    (Phase.WRITING_LOOP, Outcome.SENTINEL): Phase.COMPLETED,
    (Phase.WRITING_LOOP, Outcome.CAP_REACHED): Phase.COMPLETED,
    (Phase.WRITING_LOOP, Outcome.EVALUATE): Phase.CHECKING_COMPLETION,
    (Phase.CHECKING_COMPLETION, Outcome.VERDICT_YES): Phase.COMPLETED,
    (Phase.CHECKING_COMPLETION, Outcome.VERDICT_NO): Phase.WRITING_LOOP,
}

# 进入 COMPLETED 的原因，写入会话元数据
COMPLETION_REASONS = {
    Outcome.SENTINEL: "sentinel",
    Outcome.CAP_REACHED: "max-sections",
    Outcome.VERDICT_YES: "evaluator",
}


def next_phase(phase: Phase, outcome: Outcome) -> Phase:
    try:
        return TRANSITIONS[(phase, outcome)]
    except KeyError:
        raise InvalidStateTransitionError(
            f"编排状态机没有定义的转换: {phase.value} + {outcome.value}"
        ) from None


@dataclass(frozen=True)
class Section:
    index: int
    content: str
    method: ExtractionMethod

    @property
    def word_count(self) -> int:
        return count_words(self.content)


def assemble_article(sections: List[Section]) -> str:
    return ArticleConstants.SECTION_SEPARATOR.join(section.content for section in sections)


@dataclass
class SequencerState:
    phase: Phase = Phase.PLANNING
    sections: List[Section] = field(default_factory=list)
    plan_text: str = ""
    estimated_sections: int = 0
    # 自上次发送写作指令以来是否已经评估过
    checked_since_send: bool = False
    completion_reason: Optional[str] = None

    @property
    def completed_sections(self) -> int:
        return len(self.sections)

    @property
    def word_count(self) -> int:
        return sum(section.word_count for section in self.sections)

    @property
    def total_sections(self) -> int:
        return max(self.estimated_sections, self.completed_sections)


@dataclass
class SequencerResult:
    sections: List[Section]
    completion_reason: str
    estimated_sections: int
    loop_iterations: int

    @property
    def article(self) -> str:
        return assemble_article(self.sections)


EvaluatorFactory = Callable[[str], DraftEvaluator]


class PromptSequencer:
    """驱动单个会话从规划走到完成

    只负责推进阶段、记录进度和推送事件；终态（completed/failed）的落库由调用方完成。
    """

    def __init__(
        self,
        session_id: str,
        outline: str,
        *,
        driver: ConversationDriver,
        evaluator_factory: EvaluatorFactory,
        store: "SessionStore",
        broadcaster: ProgressBroadcaster,
        max_sections: int = ArticleConstants.DEFAULT_MAX_SECTIONS,
        min_sections: int = ArticleConstants.DEFAULT_MIN_SECTIONS,
        evaluation_ratio: float = ArticleConstants.DEFAULT_EVALUATION_RATIO,
    ):
        self.session_id = session_id
        self.outline = outline
        self.driver = driver
        self.store = store
        self.broadcaster = broadcaster
        self.min_sections = min_sections
        self.evaluation_ratio = evaluation_ratio
        self.guard = IterationGuard(max_sections)
        self._evaluator_factory = evaluator_factory
        self._evaluator: Optional[DraftEvaluator] = None
        self.state = SequencerState()
        self._handlers: Dict[Phase, Callable[[SequencerState], Awaitable[Outcome]]] = {
            Phase.PLANNING: self._handle_planning,
            Phase.TITLE_INTRO: self._handle_title_intro,
            Phase.WRITING_LOOP: self._handle_writing_loop,
            Phase.CHECKING_COMPLETION: self._handle_checking_completion,
        }

    async def run(self) -> SequencerResult:
        state = self.state
        await self._enter_phase(state.phase)

        while state.phase is not Phase.COMPLETED:
            outcome = await self._handlers[state.phase](state)
            target = next_phase(state.phase, outcome)
            if target is Phase.COMPLETED:
                state.completion_reason = COMPLETION_REASONS[outcome]
            if target is not state.phase:
                state.phase = target
                await self._enter_phase(target)

        logger.info(
            "编排完成: session_id=%s reason=%s sections=%d iterations=%d",
            self.session_id,
            state.completion_reason,
            state.completed_sections,
            self.guard.iterations,
        )
        return SequencerResult(
            sections=list(state.sections),
            completion_reason=state.completion_reason or "",
            estimated_sections=state.estimated_sections,
            loop_iterations=self.guard.iterations,
        )

    # ------------------------------------------------------------------
    # 阶段处理
    # ------------------------------------------------------------------
    async def _handle_planning(self, state: SequencerState) -> Outcome:
        plan = await self.driver.send(build_planning_prompt(self.outline), on_delta=self._push_delta)
        detected = estimate_section_count(plan)
        state.plan_text = plan.strip() or self.outline
        state.estimated_sections = max(self.min_sections, detected)
        logger.info(
            "规划完成: session_id=%s detected=%d estimated=%d",
            self.session_id, detected, state.estimated_sections,
        )
        await self.store.update(
            self.session_id,
            total_sections=state.estimated_sections,
            metadata={"estimated_sections": state.estimated_sections},
        )
        return Outcome.PLANNED

    async def _handle_title_intro(self, state: SequencerState) -> Outcome:
        raw = await self.driver.send(TITLE_INTRO_PROMPT, on_delta=self._push_delta)
        result = parse(raw)

        if result.kind is ParseKind.COMPLETE:
            logger.warning("标题引言阶段即收到完成标记: session_id=%s", self.session_id)
            return Outcome.SENTINEL
        if result.kind is ParseKind.CONTENT and result.text:
            await self._append_section(state, result.text, result.method)
            return Outcome.SECTION_ADDED

        await self._warn(f"标题与引言无法解析，已跳过: {truncate_preview(raw, 80)}")
        return Outcome.NOTHING_ADDED

    async def _handle_writing_loop(self, state: SequencerState) -> Outcome:
        if self.guard.exhausted:
            return Outcome.CAP_REACHED
        if self._evaluation_due(state) and not state.checked_since_send:
            return Outcome.EVALUATE

        raw = await self.driver.send(CONTINUE_PROMPT, on_delta=self._push_delta)
        self.guard.record()
        state.checked_since_send = False

        result = parse(raw)
        if result.kind is ParseKind.COMPLETE:
            return Outcome.SENTINEL

        # 原文兜底只用于无法解析的响应；起止标记之间为空时不能把标记本身写进正文
        fallback = (raw or "").strip() if result.kind is ParseKind.UNPARSEABLE else ""
        if result.kind is ParseKind.CONTENT and result.text:
            await self._append_section(state, result.text, result.method)
            outcome = Outcome.SECTION_ADDED
        elif fallback:
            await self._warn(f"第 {self.guard.iterations} 轮响应无法解析，已按原文保存")
            await self._append_section(state, fallback, ExtractionMethod.FALLBACK_RAW)
            outcome = Outcome.SECTION_ADDED
        else:
            await self._warn(f"第 {self.guard.iterations} 轮响应没有可用内容，未追加章节")
            await self._record_iteration()
            outcome = Outcome.NOTHING_ADDED

        if self.guard.exhausted:
            logger.warning(
                "写作循环达到上限 %d 轮，强制完成: session_id=%s",
                self.guard.max_iterations, self.session_id,
            )
            return Outcome.CAP_REACHED
        return outcome

    async def _handle_checking_completion(self, state: SequencerState) -> Outcome:
        state.checked_since_send = True
        draft = assemble_article(state.sections)
        try:
            verdict = await self._get_evaluator(state).evaluate(draft)
        except Exception as exc:
            log_exception(
                exc,
                "完成度评估",
                logger_instance=logger,
                level="warning",
                include_traceback=False,
                session_id=self.session_id,
            )
            await self._warn(f"完成度评估失败，按未完成处理: {type(exc).__name__}")
            return Outcome.VERDICT_NO

        return Outcome.VERDICT_YES if verdict is Verdict.YES else Outcome.VERDICT_NO

    # ------------------------------------------------------------------
    # 辅助方法
    # ------------------------------------------------------------------
    def _evaluation_due(self, state: SequencerState) -> bool:
        threshold = max(self.min_sections, int(self.evaluation_ratio * state.estimated_sections))
        return state.completed_sections >= threshold

    def _get_evaluator(self, state: SequencerState) -> DraftEvaluator:
        if self._evaluator is None:
            self._evaluator = self._evaluator_factory(state.plan_text or self.outline)
        return self._evaluator

    async def _append_section(self, state: SequencerState, content: str, method: ExtractionMethod) -> None:
        section = Section(index=len(state.sections) + 1, content=content, method=method)
        state.sections.append(section)

        await self.store.update(
            self.session_id,
            completed_sections=state.completed_sections,
            total_sections=state.total_sections,
            metadata={
                "current_word_count": state.word_count,
                "loop_iterations": self.guard.iterations,
            },
        )
        await self.broadcaster.push(self.session_id, SectionCompletedEvent(
            index=section.index,
            method=section.method.value,
            content=section.content,
            completed_sections=state.completed_sections,
            total_sections=state.total_sections,
            current_word_count=state.word_count,
        ))
        logger.info(
            "章节完成: session_id=%s index=%d method=%s words=%d",
            self.session_id, section.index, section.method.value, section.word_count,
        )

    async def _record_iteration(self) -> None:
        await self.store.update(self.session_id, metadata={"loop_iterations": self.guard.iterations})

    async def _enter_phase(self, phase: Phase) -> None:
        logger.info("进入阶段: session_id=%s phase=%s", self.session_id, phase.value)
        # 检查阶段是循环内部的瞬时状态，不落库
        if phase is not Phase.CHECKING_COMPLETION:
            await self.store.update(self.session_id, metadata={"phase": phase.value})
        await self.broadcaster.push(self.session_id, PhaseEvent(phase=phase.value))

    async def _warn(self, message: str) -> None:
        logger.warning("session_id=%s %s", self.session_id, message)
        await self.broadcaster.push(self.session_id, WarningEvent(message=message))

    async def _push_delta(self, delta: str) -> None:
        await self.broadcaster.push(self.session_id, TextDeltaEvent(delta=delta))
