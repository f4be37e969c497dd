"""Pytest 共享夹具

每个测试使用 tmp_path 下独立的 SQLite 文件数据库，互不干扰。
"""

import pytest
import pytest_asyncio

from article_forge import models  # noqa: F401  确保模型注册到 Base.metadata
from article_forge.core.config import Settings
from article_forge.db.base import Base
from article_forge.db.session import build_engine, build_session_factory
from article_forge.services.progress_broadcaster import CallbackEventSink, ProgressBroadcaster
from article_forge.services.session_store import SessionStore

from stubs import EventRecorder


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'article_forge_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory) -> SessionStore:
    return SessionStore(session_factory)


@pytest.fixture
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest_asyncio.fixture
async def subscribed(broadcaster, recorder):
    """返回一个注册函数：把 recorder 注册为指定会话的订阅者"""

    async def _subscribe(session_id: str) -> EventRecorder:
        await broadcaster.register(session_id, CallbackEventSink(recorder.record))
        return recorder

    return _subscribe


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        openai_api_key=None,
        openai_model_name="stub-model",
        article_max_sections=40,
        article_min_sections=5,
        article_evaluation_ratio=0.6,
        article_step_id="article-draft",
    )
