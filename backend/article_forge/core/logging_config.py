"""
日志配置

控制台与日志文件共用同一格式；article_forge 下的模块按 LOGGING_LEVEL 输出，
SQL 语句日志只在 DEBUG 模式下打开。main 在导入路由之前调用 setup_logging()。
"""

import logging
import sys
from logging.config import dictConfig
from typing import Any, Dict, Optional

from .config import Settings, settings as default_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
HANDLERS = ["console", "file"]

# 需要单独设定级别的 logger；uvicorn 自带的 access 日志保持原样
SERVICE_LOGGERS = ("article_forge", "uvicorn.error")


def get_logging_config(config: Optional[Settings] = None) -> Dict[str, Any]:
    """按配置生成 dictConfig 可用的字典"""
    config = config or default_settings
    loggers: Dict[str, Dict[str, Any]] = {
        name: {"level": config.logging_level, "handlers": HANDLERS, "propagate": False}
        for name in SERVICE_LOGGERS
    }
    loggers["sqlalchemy.engine"] = {
        "level": "INFO" if config.debug else "WARNING",
        "handlers": HANDLERS,
        "propagate": False,
    }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.FileHandler",
                "filename": str(config.log_file),
                "formatter": "default",
                "encoding": "utf-8",
            },
        },
        "loggers": loggers,
        "root": {"level": "WARNING", "handlers": HANDLERS},
    }


def setup_logging(config: Optional[Settings] = None) -> None:
    config = config or default_settings
    config.log_file.parent.mkdir(parents=True, exist_ok=True)
    dictConfig(get_logging_config(config))


def setup_exception_hook() -> None:
    """未处理的异常先写入日志再交给原有钩子；Ctrl+C 不记录"""
    previous_hook = sys.excepthook

    def exception_hook(exc_type, exc_value, exc_traceback):
        if not issubclass(exc_type, KeyboardInterrupt):
            logging.getLogger("article_forge").critical(
                "未捕获的异常导致进程退出",
                exc_info=(exc_type, exc_value, exc_traceback),
            )
        previous_hook(exc_type, exc_value, exc_traceback)

    sys.excepthook = exception_hook


def log_startup_info(config: Optional[Settings] = None) -> None:
    config = config or default_settings
    logger = logging.getLogger("article_forge.startup")
    logger.info(
        "ArticleForge 启动: environment=%s db=%s model=%s",
        config.environment,
        config.db_provider,
        config.openai_model_name,
    )
    logger.info(
        "写作循环: 上限 %d 节，至少 %d 节后开始评估，评估比例 %.2f",
        config.article_max_sections,
        config.article_min_sections,
        config.article_evaluation_ratio,
    )
    logger.info("日志级别 %s，日志文件 %s", config.logging_level, config.log_file)
