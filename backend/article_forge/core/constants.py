"""
常量定义模块

集中管理应用中使用的所有常量，提升代码可维护性和可读性。
"""

from enum import Enum


class SessionStatus(str, Enum):
    """生成会话状态枚举

    继承str使其可以直接与字符串比较，数据库中以字符串存储。
    """
    INITIALIZING = "initializing"    # 已创建，尚未开始生成
    ORCHESTRATING = "orchestrating"  # 编排中
    COMPLETED = "completed"          # 生成完成（终态）
    FAILED = "failed"                # 生成失败（终态）

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED})

# 状态只能单向前进，终态不再转换
ALLOWED_STATUS_TRANSITIONS = {
    SessionStatus.INITIALIZING: {SessionStatus.ORCHESTRATING, SessionStatus.FAILED},
    SessionStatus.ORCHESTRATING: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}


class ExtractionMethod(str, Enum):
    """章节内容的提取方式"""
    DELIMITED = "delimited"        # 从起止标记之间提取
    FALLBACK_RAW = "fallback-raw"  # 模型偏离格式时，直接使用原始响应


class ArticleConstants:
    """文章编排相关常量"""

    # 模型输出约定的标记
    SECTION_START = "<<<START>>>"
    SECTION_END = "<<<END>>>"
    COMPLETION_SENTINEL = "<<<ARTICLE_COMPLETE>>>"
    # 任何以下片段都视为"类标记"，用于判断是否为格式残缺的输出
    DELIMITER_FRAGMENTS = ("<<<", ">>>")

    # 章节拼接分隔符
    SECTION_SEPARATOR = "\n\n"

    # 默认值（可被 Settings 覆盖）
    DEFAULT_MAX_SECTIONS = 40
    DEFAULT_MIN_SECTIONS = 5
    DEFAULT_EVALUATION_RATIO = 0.6

    # 元数据中记录的步骤标识
    DEFAULT_STEP_ID = "article-draft"


class LLMConstants:
    """LLM调用相关常量"""

    # 超时配置（秒）
    EVALUATION_TIMEOUT = 120.0  # 完成度评估超时（2分钟）
    DEFAULT_TIMEOUT = 120.0  # 默认超时（2分钟）

    # Token限制
    EVALUATION_MAX_TOKENS = 256  # 评估只解析回答开头的 YES/NO

    # 评估草稿截断长度（字符），避免超出上下文窗口
    EVALUATION_DRAFT_MAX_CHARS = 60000

    # 重试配置
    MAX_RETRIES = 2  # LLM调用最大重试次数


class StoreConstants:
    """会话存储相关常量"""

    # 并发创建同一父文档的会话时，版本号冲突后的最大重试次数
    VERSION_ALLOCATION_RETRIES = 5
