"""
商品与分类模型
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import Text, Integer, Boolean, Numeric, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK


class Category(Base):
    """商品分类"""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True, comment="分类名")


class Product(Base):
    """商品表，stock 为当前可售库存"""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, comment="商品名")
    category_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK,
        ForeignKey("categories.id", ondelete="SET NULL"),
        comment="分类ID"
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="当前售价"
    )
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="库存")
    price_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="售价是否已审批")
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="是否上架")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        Index("ix_products_category", "category_id"),
    )

    category: Mapped[Optional["Category"]] = relationship("Category")

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, stock={self.stock})>"
