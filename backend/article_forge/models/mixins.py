"""
SQLAlchemy 模型通用字段 Mixin
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    """统一的时间来源，所有时间戳均使用 UTC"""
    return datetime.now(timezone.utc)


class TimestampsMixin:
    """通用时间戳字段（创建/更新时间）

    使用 Python 侧默认值而不是 server_default，便于在同一事务内读取刚写入的值。
    """

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
