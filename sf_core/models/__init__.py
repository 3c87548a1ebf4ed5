"""
Storefront 数据模型包
"""
from .base import Base
from .enums import (
    OrderStatus,
    RefundStatus,
    UserRole,
    NotificationType,
    OutboxStatus,
    STOCK_RESTORING_STATUSES,
    MANAGER_ROLES,
)
from .users import User
from .products import Category, Product
from .orders import Order, OrderItem, PaymentInfo
from .refunds import RefundRequest
from .notifications import Notification
from .outbox import OutboxEvent

__all__ = [
    "Base",
    "OrderStatus",
    "RefundStatus",
    "UserRole",
    "NotificationType",
    "OutboxStatus",
    "STOCK_RESTORING_STATUSES",
    "MANAGER_ROLES",
    "User",
    "Category",
    "Product",
    "Order",
    "OrderItem",
    "PaymentInfo",
    "RefundRequest",
    "Notification",
    "OutboxEvent",
]
