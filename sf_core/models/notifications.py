"""
站内通知模型
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Text, Boolean, ForeignKey, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from sf_core.utils.datetime_utils import utcnow
from .base import Base, BigIntPK


class Notification(Base):
    """站内通知"""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="接收人"
    )
    type: Mapped[str] = mapped_column(Text, nullable=False, comment="通知类型")
    message: Mapped[str] = mapped_column(Text, nullable=False, comment="通知内容")
    # metadata 是 Declarative 保留属性名
    extra: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, comment="附加数据")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, comment="是否已读")
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )
