"""
SSE (Server-Sent Events) 辅助工具

提供SSE事件格式化和流式响应生成功能。
"""

import json
from typing import Any, AsyncIterator

from fastapi.responses import StreamingResponse
from pydantic import BaseModel


def sse_event(event_type: str, data: Any) -> str:
    """
    格式化SSE事件

    Args:
        event_type: 事件类型（如 "text-delta", "completed", "error"）
        data: 事件数据（将被JSON序列化）

    Returns:
        格式化的SSE事件字符串

    示例:
        >>> sse_event("warning", {"message": "评估失败"})
        'event: warning\\ndata: {"message": "评估失败"}\\n\\n'
    """
    if isinstance(data, str):
        json_data = json.dumps({"content": data}, ensure_ascii=False)
    else:
        json_data = json.dumps(data, ensure_ascii=False)

    return f"event: {event_type}\ndata: {json_data}\n\n"


def sse_from_model(event: BaseModel) -> str:
    """将带 type 字段的事件模型格式化为SSE事件，事件名取自 type"""
    payload = event.model_dump(mode="json")
    return sse_event(payload["type"], payload)


def sse_comment(comment: str) -> str:
    """
    发送SSE注释（用于保持连接活跃）

    Args:
        comment: 注释内容

    Returns:
        格式化的SSE注释字符串
    """
    return f": {comment}\n\n"


# SSE响应标准头部
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_sse_response(generator: AsyncIterator[str]) -> StreamingResponse:
    """
    创建标准的SSE流式响应

    统一SSE响应的创建方式，避免在各个路由中重复设置头部。

    Args:
        generator: 异步生成器，yield SSE事件字符串

    Returns:
        StreamingResponse: FastAPI流式响应对象
    """
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
