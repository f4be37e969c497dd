"""生成进度事件

事件只用于实时推送，不落库。所有事件通过 type 字段区分，
订阅端可以直接按 type 分发。
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class StatusEvent(BaseModel):
    """会话状态快照，订阅建立时首先推送，便于迟到的订阅者恢复状态。"""

    type: Literal["status"] = "status"
    session_id: str
    status: str
    completed_sections: int = 0
    total_sections: int = 0
    total_word_count: int = 0
    error_message: Optional[str] = None


class PhaseEvent(BaseModel):
    type: Literal["phase"] = "phase"
    phase: str


class TextDeltaEvent(BaseModel):
    """模型流式输出的增量文本"""

    type: Literal["text-delta"] = "text-delta"
    delta: str


class SectionCompletedEvent(BaseModel):
    type: Literal["section-completed"] = "section-completed"
    index: int = Field(..., description="章节序号，从 1 开始")
    method: str = Field(..., description="提取方式：delimited / fallback-raw")
    content: str
    completed_sections: int
    total_sections: int
    current_word_count: int


class WarningEvent(BaseModel):
    type: Literal["warning"] = "warning"
    message: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class CompletedEvent(BaseModel):
    type: Literal["completed"] = "completed"
    total_sections: int
    total_word_count: int
    completion_reason: str


ArticleEvent = Annotated[
    Union[
        StatusEvent,
        PhaseEvent,
        TextDeltaEvent,
        SectionCompletedEvent,
        WarningEvent,
        ErrorEvent,
        CompletedEvent,
    ],
    Field(discriminator="type"),
]

article_event_adapter: TypeAdapter[ArticleEvent] = TypeAdapter(ArticleEvent)
