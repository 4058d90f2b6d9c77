"""
数据库模型基类（SQLAlchemy 2.0 风格）
"""
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


# 约束命名规则；唯一约束冲突时错误信息里带上列名
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


metadata = Base.metadata
