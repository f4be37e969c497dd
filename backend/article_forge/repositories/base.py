from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """通用仓储基类，封装常见的查询与写入操作。

    仓储只负责 SQL 层面的读写，不处理事务提交，
    事务边界由调用方（Service 层）控制。
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, **filters: Any) -> Optional[ModelType]:
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add(self, instance: ModelType) -> ModelType:
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def update_fields(self, instance: ModelType, **values: Any) -> ModelType:
        # 与 add 不同，这里允许显式写入 None（例如清空错误信息）
        for key, value in values.items():
            setattr(instance, key, value)
        await self.session.flush()
        return instance

    async def max_of(self, field_name: str, **filters: Any) -> Optional[Any]:
        """
        统计某字段在过滤条件下的最大值

        Args:
            field_name: 字段名称
            **filters: 过滤条件

        Returns:
            最大值；没有匹配记录时返回 None
        """
        field = getattr(self.model, field_name, None)
        if field is None:
            raise ValueError(f"模型 {self.model.__name__} 没有字段 {field_name}")

        stmt = select(func.max(field)).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar()

