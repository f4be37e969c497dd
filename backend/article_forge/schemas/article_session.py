from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionCreateRequest(BaseModel):
    """创建生成会话的请求体。"""

    parent_id: str = Field(..., min_length=1, max_length=64, description="目标父文档标识")
    outline: str = Field(..., description="文章大纲或种子文本")


class SessionCreateResponse(BaseModel):
    session_id: str
    version: int
    status: str


class GenerationAccepted(BaseModel):
    """后台生成任务已受理。"""

    session_id: str
    status: str
    message: str = "文章生成已开始"


class SessionProgress(BaseModel):
    """会话进度视图，只读。"""

    session_id: str
    version: int
    status: str
    completed_sections: int = 0
    total_sections: int = 0
    total_word_count: int = 0
    current_word_count: int = 0
    phase: Optional[str] = None
    error_message: Optional[str] = None


class GenerationSessionSchema(BaseModel):
    """完整会话记录。"""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    parent_id: str
    version: int
    status: str
    outline: str
    total_sections: int
    completed_sections: int
    total_word_count: int
    final_article: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="session_metadata")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class SessionSummary(BaseModel):
    """版本历史列表中的单条摘要。"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    version: int
    status: str
    total_sections: int
    total_word_count: int
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class SessionHistory(BaseModel):
    parent_id: str
    sessions: List[SessionSummary]
