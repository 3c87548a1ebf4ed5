"""
事务外发件箱

与业务数据在同一事务写入，提交后由 OutboxDispatcher 投递（至少一次）。
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Text, Integer, JSON, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from sf_core.utils.datetime_utils import utcnow
from .base import Base, BigIntPK
from .enums import OutboxStatus, sql_in


class OutboxEvent(Base):
    """待投递事件"""
    __tablename__ = "outbox_events"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(Text, nullable=False, comment="幂等键")
    topic: Mapped[str] = mapped_column(Text, nullable=False, comment="事件主题")
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, comment="事件内容")
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=OutboxStatus.PENDING.value,
        comment="投递状态"
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="已尝试次数")
    last_error: Mapped[Optional[str]] = mapped_column(Text, comment="最近一次错误")
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(comment="投递成功时间")

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_outbox_events_idempotency_key"),
        CheckConstraint(f"status IN ({sql_in(OutboxStatus)})", name="ck_outbox_events_status"),
        Index("ix_outbox_events_status_created", "status", "created_at"),
    )
