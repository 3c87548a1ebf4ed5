"""
Storefront 数据库基础模型
遵循约束：UTC 时间、Decimal 金额、统一命名规范
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from sqlalchemy import BigInteger, DateTime, Integer, inspect
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from sf_core.utils.datetime_utils import ensure_utc


class UTCDateTime(TypeDecorator):
    """带时区的时间列，读写都规范为 UTC"""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


# 主键：PostgreSQL 用 BIGINT，SQLite 只有 INTEGER 才能自增
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """数据库模型基类"""

    type_annotation_map = {
        datetime: UTCDateTime(),
    }

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = {}
        for attr in inspect(self).mapper.column_attrs:
            column = attr.columns[0]
            value = getattr(self, attr.key)

            if isinstance(value, Decimal):
                result[column.name] = str(value)
            elif isinstance(value, datetime):
                result[column.name] = value.isoformat()
            elif isinstance(value, Enum):
                result[column.name] = value.value
            else:
                result[column.name] = value

        return result
