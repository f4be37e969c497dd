"""
统一异常体系

提供业务逻辑层的异常定义，避免直接使用HTTPException。
所有异常都会被全局异常处理器捕获并转换为HTTP响应。
"""

from typing import Optional


class ArticleForgeException(Exception):
    """
    ArticleForge基础异常类

    所有业务异常的基类，会被全局异常处理器捕获。

    Attributes:
        message: 错误消息（面向用户）
        status_code: HTTP状态码
        detail: 详细错误信息（可选，用于日志）
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        detail: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(self.message)


# ==================== 4xx 客户端错误 ====================


class ResourceNotFoundError(ArticleForgeException):
    """资源不存在（404）"""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource}不存在",
            status_code=404,
            detail=f"{resource}不存在: {identifier}"
        )


class SessionNotFoundError(ResourceNotFoundError):
    """生成会话不存在（404）"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("生成会话", session_id)


class InvalidInputError(ArticleForgeException):
    """参数错误（400）"""

    def __init__(self, message: str, parameter: Optional[str] = None):
        detail = f"参数错误: {parameter} - {message}" if parameter else message
        super().__init__(
            message=message,
            status_code=400,
            detail=detail
        )


class InvalidStateTransitionError(ArticleForgeException):
    """非法状态转换（400）

    支持两种调用方式:
    1. InvalidStateTransitionError(message) - 简单消息
    2. InvalidStateTransitionError(current, target, allowed) - 详细状态转换信息
    """

    def __init__(
        self,
        current_status: str,
        target_status: Optional[str] = None,
        allowed: Optional[str] = None
    ):
        if target_status is None:
            message = current_status
            detail = current_status
        else:
            message = f"非法的状态转换: {current_status} → {target_status}"
            detail = f"{message}. 当前状态只能转换到: {allowed or '无'}"
        super().__init__(
            message=message,
            status_code=400,
            detail=detail
        )


class ConversationBusyError(ArticleForgeException):
    """会话对话线程正忙（409）：同一会话同一时刻只允许一个未完成的模型调用"""

    def __init__(self, session_id: str):
        super().__init__(
            message="该会话已有进行中的模型调用",
            status_code=409,
            detail=f"会话 {session_id} 的对话线程已有未完成的请求"
        )


# ==================== 5xx 服务端错误 ====================


class LLMServiceError(ArticleForgeException):
    """LLM服务错误（503）"""

    def __init__(self, message: str, provider: Optional[str] = None):
        detail = f"LLM服务错误 [{provider}]: {message}" if provider else f"LLM服务错误: {message}"
        super().__init__(
            message="AI服务暂时不可用，请稍后重试",
            status_code=503,
            detail=detail
        )


class LLMConfigurationError(ArticleForgeException):
    """LLM配置错误（500）"""

    def __init__(self, message: str):
        super().__init__(
            message="LLM配置错误",
            status_code=500,
            detail=message
        )


class DatabaseError(ArticleForgeException):
    """数据库错误（500）"""

    def __init__(self, message: str):
        super().__init__(
            message="数据库操作失败",
            status_code=500,
            detail=message
        )


class DocumentStoreError(ArticleForgeException):
    """父文档写入失败（500）"""

    def __init__(self, parent_id: str, reason: str):
        super().__init__(
            message="文章保存失败",
            status_code=500,
            detail=f"父文档 {parent_id} 写入失败: {reason}"
        )
