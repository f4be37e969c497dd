import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .. import models  # noqa: F401  确保模型注册到 Base.metadata
from .base import Base
from .session import engine as default_engine

logger = logging.getLogger(__name__)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """初始化数据库结构。

    Args:
        bind: 指定的数据库引擎，默认使用全局引擎
    """
    target = bind or default_engine
    await _ensure_database_exists(str(target.url.render_as_string(hide_password=False)))

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("数据库表结构已初始化: tables=%s", ", ".join(sorted(Base.metadata.tables)))


async def _ensure_database_exists(database_uri: str) -> None:
    """在首次连接前确认数据库存在，针对不同驱动做最小化准备工作。"""
    url = make_url(database_uri)

    if url.get_backend_name() == "sqlite":
        # SQLite 采用文件数据库，确保父目录存在即可，无需额外建库语句
        if not url.database or url.database == ":memory:":
            return
        # 相对路径与 SQLAlchemy 一致，按当前工作目录解析
        db_path = Path(url.database).expanduser().resolve()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return

    database = (url.database or "").strip("/")
    if not database:
        return

    admin_url = URL.create(
        drivername=url.drivername,
        username=url.username,
        password=url.password,
        host=url.host,
        port=url.port,
        database=None,
        query=url.query,
    )

    admin_engine = create_async_engine(
        admin_url.render_as_string(hide_password=False),
        isolation_level="AUTOCOMMIT",
    )
    async with admin_engine.begin() as conn:
        await conn.execute(text(f"CREATE DATABASE IF NOT EXISTS `{database}`"))
    await admin_engine.dispose()
