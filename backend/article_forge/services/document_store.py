"""
父文档存储

生成完成后，文章正文交由父文档存储持久化。
本服务不关心父文档如何渲染、审核或交付，只负责移交。
"""

import logging
from abc import ABC, abstractmethod

from ..utils.text_utils import truncate_preview

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """父文档存储接口"""

    @abstractmethod
    async def save_article(
        self,
        parent_id: str,
        article: str,
        word_count: int,
        session_id: str,
    ) -> None:
        """
        保存生成完成的文章

        Raises:
            DocumentStoreError: 写入失败
        """


class LoggingDocumentStore(DocumentStore):
    """默认实现：只记录移交日志，由外部系统按需替换"""

    async def save_article(
        self,
        parent_id: str,
        article: str,
        word_count: int,
        session_id: str,
    ) -> None:
        logger.info(
            "文章已移交父文档: parent_id=%s session_id=%s words=%d preview=%s",
            parent_id,
            session_id,
            word_count,
            truncate_preview(article, 80),
        )
