"""
订单相关数据模型
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    Text, Integer, Numeric,
    CheckConstraint, Index, ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sf_core.utils.datetime_utils import utcnow
from .base import Base, BigIntPK
from .enums import OrderStatus, sql_in


class Order(Base):
    """订单表"""
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("users.id"),
        nullable=False,
        comment="下单用户"
    )

    # 金额 = Σ(明细单价 × 数量)，下单时确定
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, comment="订单总额")
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=OrderStatus.PROCESSING.value,
        comment="订单状态"
    )
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, comment="收货地址")

    admin_note: Mapped[Optional[str]] = mapped_column(Text, comment="管理员备注")
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, comment="退款原因")
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, comment="取消原因")

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, comment="下单时间")
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="更新时间"
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(comment="送达时间")
    # 库存回补标记，与回补写在同一事务里
    stock_restored_at: Mapped[Optional[datetime]] = mapped_column(comment="库存回补时间")

    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(OrderStatus)})", name="ck_orders_status"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        Index("ix_orders_user", "user_id"),
        Index("ix_orders_status_created", "status", "created_at"),
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    payment: Mapped[Optional["PaymentInfo"]] = relationship(
        "PaymentInfo",
        back_populates="order",
        cascade="all, delete-orphan",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status={self.status})>"


class OrderItem(Base):
    """订单明细，price 是下单时的价格快照"""
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="关联订单ID"
    )
    # 商品可能被删除，明细保留
    product_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK,
        ForeignKey("products.id", ondelete="SET NULL"),
        comment="商品ID"
    )
    product_name: Mapped[Optional[str]] = mapped_column(Text, comment="下单时商品名")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, comment="数量")
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, comment="单价快照")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
        Index("ix_order_items_order", "order_id"),
        Index("ix_order_items_product", "product_id"),
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")


class PaymentInfo(Base):
    """支付信息，只保存持卡人和卡号后四位"""
    __tablename__ = "payment_info"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="关联订单ID"
    )
    card_holder: Mapped[str] = mapped_column(Text, nullable=False, comment="持卡人")
    card_last4: Mapped[str] = mapped_column(Text, nullable=False, comment="卡号后四位")
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    order: Mapped["Order"] = relationship("Order", back_populates="payment")
