"""
依赖注入模块

统一 Service 的获取方式，避免在每个路由函数中重复初始化。
进度广播器和父文档存储在应用生命周期内只有一个实例，保存在 app.state 上。
"""

import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.session import get_session_factory
from ..services.article_generation import ArticleGenerationService
from ..services.document_store import DocumentStore, LoggingDocumentStore
from ..services.progress_broadcaster import ProgressBroadcaster
from ..services.session_store import SessionStore
from .config import get_settings

logger = logging.getLogger(__name__)


def get_progress_broadcaster(request: Request) -> ProgressBroadcaster:
    """获取应用级的进度广播器（在 lifespan 中创建）"""
    broadcaster = getattr(request.app.state, "progress_broadcaster", None)
    if broadcaster is None:
        # 未经过 lifespan（例如直接挂载路由的测试应用）时按需创建
        logger.debug("app.state 上没有进度广播器，创建新实例")
        broadcaster = ProgressBroadcaster()
        request.app.state.progress_broadcaster = broadcaster
    return broadcaster


def get_document_store(request: Request) -> DocumentStore:
    store = getattr(request.app.state, "document_store", None)
    if store is None:
        store = LoggingDocumentStore()
        request.app.state.document_store = store
    return store


def get_session_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SessionStore:
    return SessionStore(session_factory)


def get_article_service(
    store: SessionStore = Depends(get_session_store),
    broadcaster: ProgressBroadcaster = Depends(get_progress_broadcaster),
    document_store: DocumentStore = Depends(get_document_store),
) -> ArticleGenerationService:
    """
    获取ArticleGenerationService实例（依赖注入）

    Example:
        ```python
        @router.get("/sessions/{session_id}/progress")
        async def get_progress(
            session_id: str,
            service: ArticleGenerationService = Depends(get_article_service),
        ):
            return await service.get_session_progress(session_id)
        ```
    """
    return ArticleGenerationService(
        store,
        broadcaster,
        document_store=document_store,
        settings=get_settings(),
    )
