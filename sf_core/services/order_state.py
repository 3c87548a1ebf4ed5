"""
订单状态机
统一管理订单状态流转规则，被以下模块复用：后台改状态、顾客取消、退款申请与审批
"""
from typing import Dict, FrozenSet, Optional, Set

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from sf_core.models import Order
from sf_core.models.enums import OrderStatus, STOCK_RESTORING_STATUSES
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import InvalidStateError, ForbiddenError, ValidationError, ConflictError
from sf_core.utils.logger import get_logger
from .auth_service import Principal

logger = get_logger(__name__)

# 参与者标签
MANAGER = "manager"
SALES_MANAGER = "sales_manager"
OWNER = "owner"


class OrderStateMachine:
    """
    订单状态机（单一职责）

    职责：
    1. 维护合法流转表 (from -> to -> 允许的参与者)
    2. 校验一次流转是否合法、谁可以执行
    3. 判断哪些状态需要回补库存
    """

    # 表外的流转一律拒绝
    TRANSITIONS: Dict[OrderStatus, Dict[OrderStatus, FrozenSet[str]]] = {
        OrderStatus.PROCESSING: {
            OrderStatus.IN_TRANSIT: frozenset({MANAGER}),
            OrderStatus.DELIVERED: frozenset({MANAGER}),
            OrderStatus.CANCELLED: frozenset({MANAGER, OWNER}),
            OrderStatus.REFUND_REQUESTED: frozenset({MANAGER}),
        },
        OrderStatus.IN_TRANSIT: {
            OrderStatus.DELIVERED: frozenset({MANAGER}),
        },
        OrderStatus.DELIVERED: {
            OrderStatus.REFUND_REQUESTED: frozenset({MANAGER, OWNER}),
        },
        OrderStatus.REFUND_REQUESTED: {
            OrderStatus.REFUND_APPROVED: frozenset({SALES_MANAGER}),
            OrderStatus.REFUND_DENIED: frozenset({SALES_MANAGER}),
        },
    }

    @staticmethod
    def parse(value: str) -> OrderStatus:
        """字符串 -> OrderStatus，非法值抛 ValidationError"""
        try:
            return OrderStatus(value)
        except ValueError:
            valid = ", ".join(s.value for s in OrderStatus if s != OrderStatus.REFUNDED)
            raise ValidationError(
                code="INVALID_STATUS",
                detail=f"Invalid status. Must be one of: {valid}"
            )

    @classmethod
    def allowed_targets(cls, current: str) -> Set[OrderStatus]:
        return set(cls.TRANSITIONS.get(OrderStatus(current), {}))

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.TRANSITIONS.get(OrderStatus(status))

    @staticmethod
    def is_stock_restoring(status: str) -> bool:
        return OrderStatus(status) in STOCK_RESTORING_STATUSES

    @staticmethod
    def actor_tags(principal: Principal, owner_id: Optional[int]) -> Set[str]:
        """主体在这张订单上的身份"""
        tags = set()
        if principal.is_manager:
            tags.add(MANAGER)
        if principal.is_sales_manager:
            tags.add(SALES_MANAGER)
        if owner_id is not None and principal.id == owner_id:
            tags.add(OWNER)
        return tags

    @classmethod
    def ensure_transition(
        cls,
        current: str,
        target: OrderStatus,
        principal: Principal,
        owner_id: Optional[int],
    ) -> None:
        """
        校验 current -> target 是否合法

        Raises:
            InvalidStateError: 流转不在表中
            ForbiddenError: 流转合法但主体无权执行
        """
        current_status = OrderStatus(current)
        allowed_actors = cls.TRANSITIONS.get(current_status, {}).get(target)
        if allowed_actors is None:
            raise InvalidStateError(
                code="INVALID_STATUS_TRANSITION",
                detail=f"Cannot change order status from {current_status.value} to {target.value}",
                current_status=current_status.value,
                target_status=target.value,
            )

        if not allowed_actors & cls.actor_tags(principal, owner_id):
            raise ForbiddenError(
                code="TRANSITION_NOT_PERMITTED",
                detail=f"Role {principal.role} may not move an order to {target.value}"
            )


async def apply_transition(session: AsyncSession, order: Order, target: OrderStatus, **values) -> None:
    """
    条件更新订单状态：只有状态仍等于读到的值时才写入

    并发请求中后到的一方影响 0 行，抛 ConflictError，不做任何修改。
    """
    expected = order.status
    values["updated_at"] = utcnow()
    result = await session.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == expected)
        .values(status=target.value, **values)
    )
    if result.rowcount != 1:
        raise ConflictError(
            code="ORDER_STATUS_CHANGED",
            detail=f"Order {order.id} is no longer {expected}",
            order_id=order.id,
        )

    # 同步内存对象，不产生第二次 UPDATE
    set_committed_value(order, "status", target.value)
    for key, value in values.items():
        set_committed_value(order, key, value)

    logger.info("Order status changed", order_id=order.id, from_status=expected, to_status=target.value)
