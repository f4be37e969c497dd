from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ..core.config import settings


def build_engine(database_uri: str, *, echo: bool = False) -> AsyncEngine:
    """根据不同数据库驱动调整连接池参数，确保在多数据库环境下表现稳定。"""
    engine_kwargs = {"echo": echo}
    is_sqlite = database_uri.startswith("sqlite")
    if is_sqlite:
        # SQLite 场景下禁用连接池并放宽线程检查，避免多协程读写冲突
        # timeout=30 增加锁等待时间，避免 "database is locked" 错误
        engine_kwargs.update(
            pool_pre_ping=False,
            connect_args={"check_same_thread": False, "timeout": 30},
            poolclass=NullPool,
        )
    else:
        # MySQL 场景保持健康检查与连接复用，适用于生产环境的长连接需求
        engine_kwargs.update(pool_pre_ping=True, pool_recycle=3600)

    new_engine = create_async_engine(database_uri, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(new_engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """在每个SQLite连接建立时启用WAL模式，允许读写同时进行"""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """统一的 Session 工厂，禁用 expire_on_commit 方便返回模型对象"""
    return async_sessionmaker(bind=bind, expire_on_commit=False)


engine = build_engine(settings.sqlalchemy_database_uri, echo=settings.debug)

AsyncSessionLocal = build_session_factory(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI 依赖项：返回全局 Session 工厂，测试中可覆盖为临时数据库。"""
    return AsyncSessionLocal
