"""
安全约束

集中管理编排过程中的防护规则：大纲校验、写作循环上限、存储前清洗。
"""

import logging
from typing import Any, Dict, Optional

from ...exceptions import InvalidInputError
from ...utils.text_utils import sanitize_for_storage, sanitize_value

logger = logging.getLogger(__name__)


def validate_outline(outline: Optional[str]) -> str:
    """
    清洗并校验大纲

    Returns:
        清洗后的大纲

    Raises:
        InvalidInputError: 大纲为空或只包含空白/控制字符
    """
    cleaned = sanitize_for_storage(outline or "")
    if not cleaned.strip():
        raise InvalidInputError("大纲不能为空", parameter="outline")
    return cleaned


def sanitize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """清洗即将写入会话存储的全部字段（包括 metadata 中的嵌套字符串）"""
    return {key: sanitize_value(value) for key, value in fields.items()}


class IterationGuard:
    """写作循环的硬性迭代上限

    每次向模型发送"继续写作"指令后调用 record，发送前通过 exhausted 判断是否已到上限。
    上限是循环终止的最终保证，与评估结果和完成标记无关。
    """

    def __init__(self, max_iterations: int):
        if max_iterations < 1:
            raise ValueError("max_iterations 必须大于 0")
        self.max_iterations = max_iterations
        self.iterations = 0

    def record(self) -> None:
        self.iterations += 1

    @property
    def exhausted(self) -> bool:
        return self.iterations >= self.max_iterations
