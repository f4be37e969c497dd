"""
文章生成会话路由

创建会话、触发后台生成、查询进度与版本历史，以及订阅实时事件（SSE）。
"""

import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status

from ...core.constants import SessionStatus
from ...core.dependencies import get_article_service, get_progress_broadcaster
from ...exceptions import InvalidStateTransitionError
from ...schemas.article_session import (
    GenerationAccepted,
    GenerationSessionSchema,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionHistory,
    SessionProgress,
    SessionSummary,
)
from ...services.article_generation import ArticleGenerationService
from ...services.progress_broadcaster import ProgressBroadcaster, QueueEventSink
from ...utils.sse_helpers import create_sse_response, sse_comment, sse_from_model

logger = logging.getLogger(__name__)

router = APIRouter(tags=["文章生成"])

# 没有事件时发送注释行保持连接
SSE_KEEPALIVE_SECONDS = 15.0
# 收到这些事件后会话已到终态，SSE 流随之结束
_TERMINAL_EVENT_TYPES = {"completed", "error"}


@router.post("/sessions", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreateRequest,
    service: ArticleGenerationService = Depends(get_article_service),
) -> SessionCreateResponse:
    """创建生成会话，版本号由服务端分配"""
    session_id = await service.start_session(request.parent_id, request.outline)
    progress = await service.get_session_progress(session_id)
    logger.info("会话已创建: session_id=%s parent_id=%s", session_id, request.parent_id)
    return SessionCreateResponse(session_id=session_id, version=progress.version, status=progress.status)


@router.post(
    "/sessions/{session_id}/generate",
    response_model=GenerationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_generation(
    session_id: str,
    background_tasks: BackgroundTasks,
    service: ArticleGenerationService = Depends(get_article_service),
) -> GenerationAccepted:
    """
    触发文章生成

    生成在后台执行，进度可通过 GET /sessions/{id}/progress 或 SSE 订阅获取。
    只有 initializing 状态的会话可以触发。
    """
    progress = await service.get_session_progress(session_id)
    if progress.status != SessionStatus.INITIALIZING.value:
        raise InvalidStateTransitionError(
            f"会话当前状态为 {progress.status}，只有 initializing 状态的会话可以开始生成"
        )

    background_tasks.add_task(service.perform_generation, session_id)
    return GenerationAccepted(session_id=session_id, status=progress.status)


@router.get("/sessions/{session_id}", response_model=GenerationSessionSchema)
async def get_session_detail(
    session_id: str,
    service: ArticleGenerationService = Depends(get_article_service),
) -> GenerationSessionSchema:
    record = await service.store.get_or_raise(session_id)
    return GenerationSessionSchema.model_validate(record)


@router.get("/sessions/{session_id}/progress", response_model=SessionProgress)
async def get_session_progress(
    session_id: str,
    service: ArticleGenerationService = Depends(get_article_service),
) -> SessionProgress:
    return await service.get_session_progress(session_id)


@router.get("/parents/{parent_id}/sessions", response_model=SessionHistory)
async def list_parent_sessions(
    parent_id: str,
    service: ArticleGenerationService = Depends(get_article_service),
) -> SessionHistory:
    """父文档的全部生成版本，新版本在前"""
    records = await service.store.list_for_parent(parent_id)
    return SessionHistory(
        parent_id=parent_id,
        sessions=[SessionSummary.model_validate(record) for record in records],
    )


@router.get("/sessions/{session_id}/events")
async def stream_session_events(
    session_id: str,
    service: ArticleGenerationService = Depends(get_article_service),
    broadcaster: ProgressBroadcaster = Depends(get_progress_broadcaster),
):
    """
    订阅会话实时事件（SSE）

    首个事件总是当前状态快照，迟到的订阅者可以据此恢复状态。
    每个会话只保留一个订阅者，新订阅会替换旧订阅。
    """
    # 先确认会话存在，再注册订阅者，快照在注册之后读取，避免遗漏两者之间的事件
    await service.store.get_or_raise(session_id)
    sink = QueueEventSink()
    await broadcaster.register(session_id, sink)
    snapshot = await service.get_status_event(session_id)

    async def event_generator():
        try:
            yield sse_from_model(snapshot)
            if SessionStatus(snapshot.status).is_terminal:
                return

            while True:
                try:
                    event = await asyncio.wait_for(sink.queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield sse_comment("keep-alive")
                    continue

                if event is None:
                    logger.debug("订阅已被替换或关闭: session_id=%s", session_id)
                    break
                yield sse_from_model(event)
                if event.type in _TERMINAL_EVENT_TYPES:
                    break
        finally:
            await broadcaster.unregister(session_id, sink)

    return create_sse_response(event_generator())
