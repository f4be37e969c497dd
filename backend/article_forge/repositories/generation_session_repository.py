from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update

from .base import BaseRepository
from ..models import GenerationSession


class GenerationSessionRepository(BaseRepository[GenerationSession]):
    model = GenerationSession

    async def get_by_id(self, session_id: str) -> Optional[GenerationSession]:
        return await self.get(id=session_id)

    async def get_max_version(self, parent_id: str) -> int:
        """获取父文档已分配的最大版本号，没有任何会话时返回 0"""
        return await self.max_of("version", parent_id=parent_id) or 0

    async def list_by_parent(self, parent_id: str) -> List[GenerationSession]:
        """按版本号倒序列出父文档的全部会话"""
        stmt = (
            select(GenerationSession)
            .where(GenerationSession.parent_id == parent_id)
            .order_by(GenerationSession.version.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_latest_by_parent(self, parent_id: str) -> Optional[GenerationSession]:
        stmt = (
            select(GenerationSession)
            .where(GenerationSession.parent_id == parent_id)
            .order_by(GenerationSession.version.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def transition_status(
        self,
        session_id: str,
        from_status: str,
        to_status: str,
        updated_at: datetime,
    ) -> bool:
        """条件更新状态，只有当前状态等于 from_status 时才生效，返回是否更新成功"""
        stmt = (
            update(GenerationSession)
            .where(GenerationSession.id == session_id)
            .where(GenerationSession.status == from_status)
            .values(status=to_status, updated_at=updated_at)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
