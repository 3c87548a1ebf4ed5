"""
业务枚举
"""
from enum import Enum


class OrderStatus(str, Enum):
    """订单状态（封闭集合）"""
    PROCESSING = "processing"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUND_REQUESTED = "refund-requested"
    REFUND_APPROVED = "refund-approved"
    REFUND_DENIED = "refund-denied"
    # 历史数据中的状态，没有任何流转能进入
    REFUNDED = "refunded"


# 进入这些状态时库存要回补
STOCK_RESTORING_STATUSES = frozenset({
    OrderStatus.CANCELLED,
    OrderStatus.REFUND_APPROVED,
    OrderStatus.REFUNDED,
})


class UserRole(str, Enum):
    CUSTOMER = "customer"
    PRODUCT_MANAGER = "product_manager"
    SALES_MANAGER = "sales_manager"


MANAGER_ROLES = frozenset({UserRole.PRODUCT_MANAGER, UserRole.SALES_MANAGER})


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    ORDER_PLACED = "order_placed"
    ORDER_STATUS = "order_status"
    ORDER_CANCELLED = "order_cancelled"
    REFUND_REQUESTED = "refund_requested"
    REFUND_APPROVED = "refund_approved"
    REFUND_DENIED = "refund_denied"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


def sql_in(enum_cls) -> str:
    """生成 CHECK 约束用的 IN 列表"""
    return ",".join(f"'{member.value}'" for member in enum_cls)
