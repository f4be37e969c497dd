"""集中导出 ORM 模型，确保 SQLAlchemy 元数据在初始化时被正确加载。"""

from .generation_session import GenerationSession

__all__ = [
    "GenerationSession",
]
