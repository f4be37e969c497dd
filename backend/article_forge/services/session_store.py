"""
会话存储服务

生成会话的唯一事实来源。每个操作使用独立的数据库会话和事务，
不同生成会话之间唯一共享的就是这里的数据行。
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.constants import (
    ALLOWED_STATUS_TRANSITIONS,
    SessionStatus,
    StoreConstants,
)
from ..exceptions import (
    DatabaseError,
    InvalidInputError,
    InvalidStateTransitionError,
    SessionNotFoundError,
)
from ..models import GenerationSession
from ..models.mixins import utcnow
from ..repositories.generation_session_repository import GenerationSessionRepository
from .article_generation.safety import sanitize_fields, validate_outline

logger = logging.getLogger(__name__)

# update 允许写入的字段
_UPDATABLE_FIELDS = frozenset({
    "status",
    "total_sections",
    "completed_sections",
    "total_word_count",
    "final_article",
    "error_message",
    "metadata",
    "started_at",
    "completed_at",
})


class SessionStore:
    """生成会话的持久化存储"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self,
        parent_id: str,
        outline: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GenerationSession:
        """
        创建新的生成会话

        版本号取该父文档已有最大版本号加一。并发创建时依赖 (parent_id, version)
        唯一约束检测冲突，冲突后重新分配，最多重试 VERSION_ALLOCATION_RETRIES 次。

        Raises:
            InvalidInputError: parent_id 或大纲为空
            DatabaseError: 版本号分配多次冲突或数据库写入失败
        """
        if not parent_id or not parent_id.strip():
            raise InvalidInputError("父文档标识不能为空", parameter="parent_id")
        cleaned_outline = validate_outline(outline)

        last_error: Optional[Exception] = None
        for attempt in range(1, StoreConstants.VERSION_ALLOCATION_RETRIES + 1):
            async with self._session_factory() as session:
                repo = GenerationSessionRepository(session)
                try:
                    version = await repo.get_max_version(parent_id) + 1
                    now = utcnow()
                    seeded = {"version": version, "started_at": now.isoformat(), **(metadata or {})}
                    record = GenerationSession(
                        id=str(uuid.uuid4()),
                        parent_id=parent_id,
                        version=version,
                        status=SessionStatus.INITIALIZING.value,
                        outline=cleaned_outline,
                        total_sections=0,
                        completed_sections=0,
                        total_word_count=0,
                        session_metadata=sanitize_fields(seeded),
                        started_at=now,
                        created_at=now,
                        updated_at=now,
                    )
                    await repo.add(record)
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    last_error = exc
                    logger.warning(
                        "会话版本号冲突，重新分配: parent_id=%s attempt=%d/%d",
                        parent_id,
                        attempt,
                        StoreConstants.VERSION_ALLOCATION_RETRIES,
                    )
                    continue
                except SQLAlchemyError as exc:
                    await session.rollback()
                    raise DatabaseError(f"创建生成会话失败: {exc}") from exc

            logger.info(
                "创建生成会话: session_id=%s parent_id=%s version=%d",
                record.id, parent_id, record.version,
            )
            return record

        raise DatabaseError(
            f"父文档 {parent_id} 的版本号分配冲突，已重试 {StoreConstants.VERSION_ALLOCATION_RETRIES} 次"
        ) from last_error

    async def get(self, session_id: str) -> Optional[GenerationSession]:
        async with self._session_factory() as session:
            return await GenerationSessionRepository(session).get_by_id(session_id)

    async def get_or_raise(self, session_id: str) -> GenerationSession:
        record = await self.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record

    async def list_for_parent(self, parent_id: str) -> List[GenerationSession]:
        """父文档的全部会话，版本号倒序"""
        async with self._session_factory() as session:
            return await GenerationSessionRepository(session).list_by_parent(parent_id)

    async def get_latest_for_parent(self, parent_id: str) -> Optional[GenerationSession]:
        async with self._session_factory() as session:
            return await GenerationSessionRepository(session).get_latest_by_parent(parent_id)

    async def update(self, session_id: str, **fields: Any) -> GenerationSession:
        """
        更新会话字段

        - 写入前统一清洗所有字符串
        - 状态只能按 ALLOWED_STATUS_TRANSITIONS 单向前进
        - 终态记录只允许追加 metadata
        - completed_sections 不允许减少
        - metadata 与已有内容合并而非覆盖
        - 始终刷新 updated_at

        Raises:
            SessionNotFoundError: 会话不存在
            InvalidStateTransitionError: 违反上述约束
            DatabaseError: 数据库写入失败
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"不支持更新的字段: {', '.join(sorted(unknown))}")

        cleaned = sanitize_fields(fields)

        async with self._session_factory() as session:
            repo = GenerationSessionRepository(session)
            try:
                record = await repo.get_by_id(session_id)
                if record is None:
                    raise SessionNotFoundError(session_id)

                values = self._prepare_values(record, cleaned)
                values["updated_at"] = utcnow()
                await repo.update_fields(record, **values)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"更新生成会话失败 (session_id={session_id}): {exc}") from exc

        return record

    async def claim_for_generation(self, session_id: str) -> GenerationSession:
        """
        原子地把会话从 initializing 切换到 orchestrating

        同一会话被重复触发生成时，只有一个调用能成功。

        Raises:
            SessionNotFoundError: 会话不存在
            InvalidStateTransitionError: 会话已经开始或结束
            DatabaseError: 数据库写入失败
        """
        async with self._session_factory() as session:
            repo = GenerationSessionRepository(session)
            try:
                claimed = await repo.transition_status(
                    session_id,
                    SessionStatus.INITIALIZING.value,
                    SessionStatus.ORCHESTRATING.value,
                    utcnow(),
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"更新生成会话失败 (session_id={session_id}): {exc}") from exc

        record = await self.get_or_raise(session_id)
        if not claimed:
            raise InvalidStateTransitionError(
                f"会话 {session_id} 当前状态为 {record.status}，不能重复执行生成"
            )
        return record

    @staticmethod
    def _prepare_values(record: GenerationSession, fields: Dict[str, Any]) -> Dict[str, Any]:
        """校验约束并生成最终写入的字段"""
        current = SessionStatus(record.status)
        values: Dict[str, Any] = {}

        metadata_patch = fields.pop("metadata", None)
        if metadata_patch:
            values["session_metadata"] = {**(record.session_metadata or {}), **metadata_patch}

        if current.is_terminal and fields:
            raise InvalidStateTransitionError(
                f"会话已处于终态 {current.value}，只允许更新 metadata"
            )

        if "status" in fields:
            try:
                target = SessionStatus(fields["status"])
            except ValueError as exc:
                raise InvalidInputError(f"未知的会话状态: {fields['status']}", parameter="status") from exc
            if target != current:
                allowed = ALLOWED_STATUS_TRANSITIONS[current]
                if target not in allowed:
                    raise InvalidStateTransitionError(
                        current.value,
                        target.value,
                        ", ".join(sorted(status.value for status in allowed)),
                    )
            fields["status"] = target.value

        if "completed_sections" in fields and fields["completed_sections"] < record.completed_sections:
            raise InvalidStateTransitionError(
                f"completed_sections 不允许减少: {record.completed_sections} → {fields['completed_sections']}"
            )

        values.update(fields)
        return values
