"""
时间处理工具模块
统一处理所有 datetime 操作，确保都是 timezone-aware (UTC)
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """返回当前UTC时间（timezone-aware）"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    把 datetime 规范为 UTC

    naive datetime 视为 UTC（SQLite 读回来的值不带时区）。
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(start: datetime, end: Optional[datetime] = None) -> float:
    """两个时间点相差的小时数，end 默认为当前时间"""
    end = ensure_utc(end) if end else utcnow()
    return (end - ensure_utc(start)).total_seconds() / 3600
