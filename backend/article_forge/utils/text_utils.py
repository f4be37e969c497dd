"""
文本处理工具

提供存储前清洗、字数统计、文本截断等通用功能。
所有写入会话存储的文本都必须先经过 sanitize_for_storage。
"""

import re
from typing import Any, Optional

# 需要剔除的控制字符：保留 \t \n \r，其余 C0 控制字符一律移除
_CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")


def sanitize_for_storage(text: Optional[str]) -> Optional[str]:
    """
    移除可能破坏存储层的控制字符

    Args:
        text: 原始文本，None 原样返回

    Returns:
        清洗后的文本

    Examples:
        >>> sanitize_for_storage("a\\x00b\\tc")
        'ab\\tc'
    """
    if text is None:
        return None
    return _CONTROL_CHARS_PATTERN.sub("", text)


def sanitize_value(value: Any) -> Any:
    """递归清洗 dict/list 中的所有字符串值，其他类型原样返回"""
    if isinstance(value, str):
        return sanitize_for_storage(value)
    if isinstance(value, dict):
        return {key: sanitize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_value(item) for item in value]
    return value


def count_words(text: Optional[str]) -> int:
    """按空白切分统计词数"""
    if not text:
        return 0
    return len(text.split())


def truncate(
    text: Optional[str],
    max_length: int,
    suffix: str = "...",
    strip: bool = True,
) -> str:
    """
    截断文本到指定长度

    Args:
        text: 原始文本，None 会返回空字符串
        max_length: 最大长度（不含后缀）
        suffix: 截断后缀，默认 "..."
        strip: 是否去除首尾空白，默认 True

    Returns:
        截断后的文本

    Examples:
        >>> truncate("Hello World", 5)
        'Hello...'
        >>> truncate(None, 10)
        ''
    """
    if not text:
        return ""

    if strip:
        text = text.strip()

    if len(text) <= max_length:
        return text

    return text[:max_length] + suffix


def truncate_head(text: Optional[str], max_length: int, prefix: str = "...") -> str:
    """
    保留文本尾部

    长草稿送去评估时，结尾部分比开头更能说明是否已写完结论。
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return prefix + text[-max_length:]


def truncate_preview(text: Optional[str], max_length: int = 100) -> str:
    """生成日志用的单行文本预览"""
    return truncate(text, max_length).replace("\n", " ")
