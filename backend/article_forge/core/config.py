from functools import lru_cache
from pathlib import Path
from typing import Optional
import sys

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

from .constants import ArticleConstants


class Settings(BaseSettings):
    """应用全局配置，所有可调参数集中于此，统一加载自环境变量。"""

    # -------------------- 基础应用配置 --------------------
    app_name: str = Field(default="ArticleForge API", description="FastAPI 文档标题")
    environment: str = Field(default="development", description="当前环境标识")
    debug: bool = Field(default=False, description="是否开启调试模式")
    logging_level: str = Field(
        default="INFO",
        env="LOGGING_LEVEL",
        description="应用日志级别",
    )

    # -------------------- 数据库配置 --------------------
    database_url: Optional[str] = Field(
        default=None,
        env="DATABASE_URL",
        description="完整的数据库连接串，填入后覆盖下方数据库配置"
    )
    db_provider: str = Field(
        default="sqlite",
        env="DB_PROVIDER",
        description="数据库类型，仅支持 mysql 或 sqlite"
    )
    mysql_host: str = Field(default="localhost", env="MYSQL_HOST", description="MySQL 主机名")
    mysql_port: int = Field(default=3306, env="MYSQL_PORT", description="MySQL 端口")
    mysql_user: str = Field(default="root", env="MYSQL_USER", description="MySQL 用户名")
    mysql_password: str = Field(default="", env="MYSQL_PASSWORD", description="MySQL 密码")
    mysql_database: str = Field(default="article_forge", env="MYSQL_DATABASE", description="MySQL 数据库名称")

    # -------------------- LLM 相关配置 --------------------
    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY", description="默认的 LLM API Key")
    openai_base_url: Optional[HttpUrl] = Field(
        default=None,
        env="OPENAI_API_BASE_URL",
        validation_alias=AliasChoices("OPENAI_API_BASE_URL", "OPENAI_BASE_URL"),
        description="LLM API Base URL",
    )
    openai_model_name: str = Field(default="gpt-4o-mini", env="OPENAI_MODEL_NAME", description="默认 LLM 模型名称")
    llm_timeout: float = Field(
        default=600.0,
        gt=0,
        env="LLM_TIMEOUT",
        description="单次模型调用的超时时间（秒），由模型提供方执行",
    )
    llm_max_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        env="LLM_MAX_RETRIES",
        description="网络类错误的最大重试次数（仅用于非流式的独立调用）",
    )

    # LLM Temperature 配置
    llm_temp_writing: float = Field(
        default=0.75,
        ge=0.0,
        le=2.0,
        env="LLM_TEMP_WRITING",
        description="文章写作对话的temperature值（创造性高）",
    )
    llm_temp_evaluation: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        env="LLM_TEMP_EVALUATION",
        description="完成度评估的temperature值（确定性）",
    )

    # -------------------- 文章编排配置 --------------------
    article_max_sections: int = Field(
        default=ArticleConstants.DEFAULT_MAX_SECTIONS,
        ge=1,
        le=200,
        env="ARTICLE_MAX_SECTIONS",
        description="写作循环的硬性迭代上限，防止失控循环",
    )
    article_min_sections: int = Field(
        default=ArticleConstants.DEFAULT_MIN_SECTIONS,
        ge=1,
        env="ARTICLE_MIN_SECTIONS",
        description="预估章节数下限，同时也是开始完成度评估的最低章节数",
    )
    article_evaluation_ratio: float = Field(
        default=ArticleConstants.DEFAULT_EVALUATION_RATIO,
        gt=0.0,
        le=1.0,
        env="ARTICLE_EVALUATION_RATIO",
        description="完成预估章节数的该比例后开始调用完成度评估",
    )
    article_step_id: str = Field(
        default=ArticleConstants.DEFAULT_STEP_ID,
        env="ARTICLE_STEP_ID",
        description="写入会话元数据的工作流步骤标识",
    )

    model_config = SettingsConfigDict(
        env_file=(".env", "backend/.env"),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: Optional[str]) -> Optional[str]:
        """当环境变量中提供 DATABASE_URL 时，原样返回，便于自定义。"""
        return value.strip() if isinstance(value, str) and value.strip() else value

    @field_validator("db_provider", mode="before")
    @classmethod
    def _normalize_db_provider(cls, value: Optional[str]) -> str:
        """统一数据库类型大小写，并限制为受支持的驱动。"""
        candidate = (value or "sqlite").strip().lower()
        if candidate not in {"mysql", "sqlite"}:
            raise ValueError("DB_PROVIDER 仅支持 mysql 或 sqlite")
        return candidate

    @field_validator("logging_level", mode="before")
    @classmethod
    def _normalize_logging_level(cls, value: Optional[str]) -> str:
        """规范日志级别配置。"""
        candidate = (value or "INFO").strip().upper()
        valid_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
        if candidate not in valid_levels:
            raise ValueError("LOGGING_LEVEL 仅支持 CRITICAL/ERROR/WARNING/INFO/DEBUG/NOTSET")
        return candidate

    @property
    def sqlalchemy_database_uri(self) -> str:
        """生成 SQLAlchemy 兼容的异步连接串，数据库类型由 DB_PROVIDER 控制。"""
        if self.database_url:
            url = make_url(self.database_url)
            database = (url.database or "").strip("/") if url.get_backend_name() != "sqlite" else url.database
            normalized = URL.create(
                drivername=url.drivername,
                username=url.username,
                password=url.password,
                host=url.host,
                port=url.port,
                database=database or None,
                query=url.query,
            )
            return normalized.render_as_string(hide_password=False)

        if self.db_provider == "sqlite":
            # SQLite 固定使用 storage/article_forge.db，并转换为绝对路径以避免运行目录差异
            db_path = (self.storage_dir / "article_forge.db").resolve()
            return f"sqlite+aiosqlite:///{db_path}"

        # MySQL 分支：统一对密码进行 URL 编码，避免特殊字符破坏连接串
        from urllib.parse import quote_plus

        encoded_password = quote_plus(self.mysql_password)
        database = (self.mysql_database or "").strip("/")
        return (
            f"mysql+asyncmy://{self.mysql_user}:{encoded_password}"
            f"@{self.mysql_host}:{self.mysql_port}/{database}"
        )

    @property
    def storage_dir(self) -> Path:
        """存储目录根路径（数据库与日志文件）"""
        if getattr(sys, 'frozen', False):
            return Path(sys.executable).parent / "storage"
        return Path(__file__).resolve().parents[3] / "storage"

    @property
    def log_file(self) -> Path:
        """日志文件路径"""
        return self.storage_dir / "debug.log"


@lru_cache
def get_settings() -> Settings:
    """使用 LRU 缓存确保配置只初始化一次，减少 IO 与解析开销。"""
    return Settings()


settings = get_settings()
