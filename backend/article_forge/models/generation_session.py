from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.mysql import LONGTEXT
from sqlalchemy.orm import Mapped, mapped_column

from ..core.constants import SessionStatus
from ..db.base import Base
from .mixins import TimestampsMixin

# 自定义列类型：兼容跨数据库环境
LONG_TEXT_TYPE = Text().with_variant(LONGTEXT, "mysql")


class GenerationSession(TimestampsMixin, Base):
    """文章生成会话表，记录一次为父文档生成内容的完整尝试。

    同一父文档的版本号单调递增且永不复用（包括失败的会话），
    由 (parent_id, version) 唯一约束兜底。
    """

    __tablename__ = "generation_sessions"
    __table_args__ = (
        UniqueConstraint("parent_id", "version", name="uq_generation_sessions_parent_version"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    parent_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=SessionStatus.INITIALIZING.value)

    outline: Mapped[str] = mapped_column(LONG_TEXT_TYPE, nullable=False)
    total_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_article: Mapped[Optional[str]] = mapped_column(LONG_TEXT_TYPE)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # 属性名避开 DeclarativeBase.metadata，数据库列名仍为 metadata
    session_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    @property
    def status_enum(self) -> SessionStatus:
        return SessionStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum.is_terminal

    def __repr__(self) -> str:
        return (
            f"<GenerationSession id={self.id} parent_id={self.parent_id} "
            f"version={self.version} status={self.status}>"
        )
