"""
内容提取器

把一次模型原始响应解析为结构化结果：完成信号、章节内容或无法解析。
纯函数实现，不依赖任何外部状态。
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ...core.constants import ArticleConstants, ExtractionMethod


class ParseKind(str, Enum):
    COMPLETE = "complete"
    CONTENT = "content"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParseResult:
    """
    单次响应的解析结果

    Attributes:
        kind: 结果类型
        text: 提取出的内容，仅 CONTENT 时有值
        method: 提取方式，仅 CONTENT 时有值
    """
    kind: ParseKind
    text: Optional[str] = None
    method: Optional[ExtractionMethod] = None

    @classmethod
    def complete(cls) -> "ParseResult":
        return cls(kind=ParseKind.COMPLETE)

    @classmethod
    def content(cls, text: str, method: ExtractionMethod) -> "ParseResult":
        return cls(kind=ParseKind.CONTENT, text=text, method=method)

    @classmethod
    def unparseable(cls) -> "ParseResult":
        return cls(kind=ParseKind.UNPARSEABLE)


def parse(raw: Optional[str]) -> ParseResult:
    """
    解析模型响应

    判定顺序：
    1. 任意位置出现完成标记 -> COMPLETE（优先于起止标记）
    2. 起始标记之后存在结束标记 -> 取两者之间的内容
    3. 完全不含类标记片段 -> 整段响应作为内容（模型常偏离格式但内容可用）
    4. 其余情况（孤立或残缺的标记） -> UNPARSEABLE

    空响应或只有空白的响应视为 UNPARSEABLE。
    """
    if not raw or not raw.strip():
        return ParseResult.unparseable()

    if ArticleConstants.COMPLETION_SENTINEL in raw:
        return ParseResult.complete()

    start = raw.find(ArticleConstants.SECTION_START)
    if start != -1:
        body_start = start + len(ArticleConstants.SECTION_START)
        end = raw.find(ArticleConstants.SECTION_END, body_start)
        if end != -1:
            return ParseResult.content(raw[body_start:end].strip(), ExtractionMethod.DELIMITED)

    if not any(fragment in raw for fragment in ArticleConstants.DELIMITER_FRAGMENTS):
        return ParseResult.content(raw.strip(), ExtractionMethod.FALLBACK_RAW)

    return ParseResult.unparseable()


# 规划响应中的编号列表行，例如 "1. 引言"、"2) 背景"
_NUMBERED_LINE = re.compile(r"^\s*\d+[.)、]\s+\S", re.MULTILINE)
# 退而求其次：Markdown 标题行
_HEADING_LINE = re.compile(r"^\s{0,3}#{1,6}\s+\S", re.MULTILINE)


def estimate_section_count(plan_text: Optional[str]) -> int:
    """
    粗略估计规划响应中的章节数

    优先统计编号列表行，没有编号列表时统计 Markdown 标题行。
    只是经验值，用于决定何时开始完成度评估，不作为任何硬性约束。
    """
    if not plan_text:
        return 0
    numbered = len(_NUMBERED_LINE.findall(plan_text))
    if numbered:
        return numbered
    return len(_HEADING_LINE.findall(plan_text))
