"""ORM 声明式基类，所有模型共享同一份 MetaData。"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy 声明式基类"""
