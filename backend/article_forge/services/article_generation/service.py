"""
文章生成服务（协调者）

对外提供三个入口：
- start_session: 创建会话并立即返回
- perform_generation: 执行完整编排直到终态，通常作为后台任务调用
- get_session_progress: 查询进度

会话状态以会话存储为准，事件推送只是实时旁路。
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from ...core.config import Settings, get_settings
from ...core.constants import SessionStatus
from ...exceptions import ArticleForgeException
from ...models import GenerationSession
from ...models.mixins import utcnow
from ...schemas.article_session import SessionProgress
from ...schemas.events import CompletedEvent, ErrorEvent, StatusEvent
from ...utils.exception_helpers import describe_error, get_safe_error_message, log_exception
from ...utils.text_utils import count_words
from ..document_store import DocumentStore, LoggingDocumentStore
from ..llm_service import LLMService
from ..progress_broadcaster import ProgressBroadcaster
from .conversation import ConversationDriver
from .evaluator import CompletionEvaluator, DraftEvaluator
from .provider import ConversationProvider, OpenAIConversationProvider
from .sequencer import PromptSequencer, SequencerResult

if TYPE_CHECKING:
    from ..session_store import SessionStore

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], ConversationProvider]
EvaluatorFactory = Callable[[str], DraftEvaluator]


class ArticleGenerationService:
    """长文生成编排服务

    LLMService 只有在需要默认的提供方或评估器时才会创建，
    测试可以通过 provider_factory / evaluator_factory 注入替身。
    """

    def __init__(
        self,
        store: "SessionStore",
        broadcaster: ProgressBroadcaster,
        *,
        document_store: Optional[DocumentStore] = None,
        llm_service: Optional[LLMService] = None,
        provider_factory: Optional[ProviderFactory] = None,
        evaluator_factory: Optional[EvaluatorFactory] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.document_store = document_store or LoggingDocumentStore()
        self.settings = settings or get_settings()
        self._llm_service = llm_service
        self._provider_factory = provider_factory
        self._evaluator_factory = evaluator_factory

    @property
    def llm_service(self) -> LLMService:
        if self._llm_service is None:
            self._llm_service = LLMService(self.settings)
        return self._llm_service

    # ------------------------------------------------------------------
    # 对外入口
    # ------------------------------------------------------------------
    async def start_session(self, parent_id: str, outline_text: str) -> str:
        """创建生成会话，返回会话ID"""
        record = await self.store.create(
            parent_id,
            outline_text,
            metadata={
                "model": self.settings.openai_model_name,
                "step_id": self.settings.article_step_id,
            },
        )
        return record.id

    async def perform_generation(self, session_id: str) -> None:
        """
        执行完整的生成流程，直到会话进入 completed 或 failed

        模型调用失败与持久化失败会让会话进入 failed 并推送 error 事件，
        异常不会继续向上抛出（调用方一般是后台任务）。

        Raises:
            SessionNotFoundError: 会话不存在
            InvalidStateTransitionError: 会话已经开始或结束，不能重复执行
        """
        record = await self.store.claim_for_generation(session_id)

        logger.info(
            "开始文章生成: session_id=%s parent_id=%s version=%d",
            session_id, record.parent_id, record.version,
        )

        await self._announce_orchestrating(record)

        try:
            sequencer = self._build_sequencer(record)
            result = await sequencer.run()
            await self._complete(record, result)
        except Exception as exc:
            await self._fail(record, exc)

    async def get_session_progress(self, session_id: str) -> SessionProgress:
        record = await self.store.get_or_raise(session_id)
        return self.to_progress(record)

    async def get_status_event(self, session_id: str) -> StatusEvent:
        """会话当前状态的快照事件，供新的订阅者恢复状态"""
        record = await self.store.get_or_raise(session_id)
        return StatusEvent(
            session_id=record.id,
            status=record.status,
            completed_sections=record.completed_sections,
            total_sections=record.total_sections,
            total_word_count=record.total_word_count,
            error_message=record.error_message,
        )

    @staticmethod
    def to_progress(record: GenerationSession) -> SessionProgress:
        metadata = record.session_metadata or {}
        return SessionProgress(
            session_id=record.id,
            version=record.version,
            status=record.status,
            completed_sections=record.completed_sections,
            total_sections=record.total_sections,
            total_word_count=record.total_word_count,
            current_word_count=metadata.get("current_word_count", record.total_word_count),
            phase=metadata.get("phase"),
            error_message=record.error_message,
        )

    # ------------------------------------------------------------------
    # 内部流程
    # ------------------------------------------------------------------
    def _build_sequencer(self, record: GenerationSession) -> PromptSequencer:
        provider = (
            self._provider_factory()
            if self._provider_factory is not None
            else OpenAIConversationProvider(self.llm_service, temperature=self.settings.llm_temp_writing)
        )
        evaluator_factory = self._evaluator_factory or (
            lambda plan: CompletionEvaluator(self.llm_service, plan)
        )
        return PromptSequencer(
            record.id,
            record.outline,
            driver=ConversationDriver(record.id, provider),
            evaluator_factory=evaluator_factory,
            store=self.store,
            broadcaster=self.broadcaster,
            max_sections=self.settings.article_max_sections,
            min_sections=self.settings.article_min_sections,
            evaluation_ratio=self.settings.article_evaluation_ratio,
        )

    async def _announce_orchestrating(self, record: GenerationSession) -> None:
        await self.broadcaster.push(record.id, StatusEvent(
            session_id=record.id,
            status=SessionStatus.ORCHESTRATING.value,
        ))

    async def _complete(self, record: GenerationSession, result: SequencerResult) -> None:
        article = result.article
        word_count = count_words(article)
        total_sections = len(result.sections)

        # 父文档写入失败时会话进入 failed，不能先标记完成
        await self.document_store.save_article(record.parent_id, article, word_count, record.id)

        await self.store.update(
            record.id,
            status=SessionStatus.COMPLETED,
            final_article=article,
            total_sections=total_sections,
            completed_sections=total_sections,
            total_word_count=word_count,
            completed_at=utcnow(),
            metadata={
                "completion_reason": result.completion_reason,
                "current_word_count": word_count,
                "loop_iterations": result.loop_iterations,
            },
        )
        await self.broadcaster.push(record.id, CompletedEvent(
            total_sections=total_sections,
            total_word_count=word_count,
            completion_reason=result.completion_reason,
        ))
        logger.info(
            "文章生成完成: session_id=%s sections=%d words=%d reason=%s",
            record.id, total_sections, word_count, result.completion_reason,
        )

    async def _fail(self, record: GenerationSession, exc: Exception) -> None:
        log_exception(exc, "执行文章生成", logger_instance=logger, session_id=record.id, parent_id=record.parent_id)
        error_message = describe_error(exc)

        try:
            await self.store.update(
                record.id,
                status=SessionStatus.FAILED,
                error_message=error_message,
                completed_at=utcnow(),
            )
        except ArticleForgeException as persist_exc:
            # 失败状态本身无法落库时，会话停留在原状态，只能依赖日志排查
            log_exception(
                persist_exc,
                "记录会话失败状态",
                logger_instance=logger,
                session_id=record.id,
            )

        await self.broadcaster.push(record.id, ErrorEvent(message=get_safe_error_message(exc)))
