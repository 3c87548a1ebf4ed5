"""
退款申请模型
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sf_core.utils.datetime_utils import utcnow
from .base import Base, BigIntPK
from .enums import RefundStatus, sql_in
from .orders import Order


class RefundRequest(Base):
    """退款申请表

    status 只能从 pending 走到 approved 或 rejected 一次。
    """
    __tablename__ = "refund_requests"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="关联订单ID"
    )
    user_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("users.id"), nullable=False, comment="申请人")
    reason: Mapped[str] = mapped_column(Text, nullable=False, comment="退款原因")
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=RefundStatus.PENDING.value,
        comment="申请状态"
    )
    admin_note: Mapped[Optional[str]] = mapped_column(Text, comment="审批备注")
    requested_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, comment="申请时间")
    approved_at: Mapped[Optional[datetime]] = mapped_column(comment="批准时间")
    decided_at: Mapped[Optional[datetime]] = mapped_column(comment="审批时间")

    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(RefundStatus)})", name="ck_refund_requests_status"),
        Index("ix_refund_requests_order", "order_id"),
        Index("ix_refund_requests_status", "status"),
    )

    order: Mapped["Order"] = relationship("Order")
