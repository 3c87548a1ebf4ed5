"""
用户模型
"""
from datetime import datetime

from sqlalchemy import Text, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sf_core.utils.datetime_utils import utcnow
from .base import Base, BigIntPK
from .enums import UserRole, sql_in


class User(Base):
    """用户表（顾客和两类管理员共用）"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, comment="姓名")
    email: Mapped[str] = mapped_column(Text, nullable=False, comment="邮箱")
    role: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=UserRole.CUSTOMER.value,
        comment="角色"
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, comment="创建时间")

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        CheckConstraint(f"role IN ({sql_in(UserRole)})", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role})>"
