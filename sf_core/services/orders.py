"""
订单服务
处理订单查询、后台改状态和顾客取消
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sf_core.database import DatabaseManager
from sf_core.models import Order, OrderStatus, RefundRequest, RefundStatus, User
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import ForbiddenError, InvalidStateError, NotFoundError
from .auth_service import Principal
from .base import BaseService, RepositoryMixin, ServiceResult
from .notifications import NotificationService
from .order_state import OrderStateMachine, apply_transition
from .refunds import RefundService
from .stock import StockService

# 由退款审批流程处理的目标状态
REFUND_DECISIONS = {
    OrderStatus.REFUND_APPROVED: "approve",
    OrderStatus.REFUND_DENIED: "reject",
}


def serialize_order(order: Order, user: Optional[User] = None) -> Dict[str, Any]:
    """订单 -> 响应字典（含明细）"""
    data = order.to_dict()
    data["items"] = [
        {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "price": str(item.price),
        }
        for item in order.items
    ]
    if user is not None:
        data["user_name"] = user.name
        data["user_email"] = user.email
    return data


class OrderService(BaseService, RepositoryMixin):
    """订单服务"""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        stock_service: Optional[StockService] = None,
        notification_service: Optional[NotificationService] = None,
        refund_service: Optional[RefundService] = None,
    ):
        super().__init__(db_manager)
        self.stock_service = stock_service or StockService(self.db_manager)
        self.notification_service = notification_service or NotificationService(self.db_manager)
        self.refund_service = refund_service or RefundService(
            self.db_manager,
            stock_service=self.stock_service,
            notification_service=self.notification_service,
        )

    # ========== 查询 ==========

    async def list_orders(self, principal: Principal, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """后台订单列表（仅管理员）"""
        if not principal.is_manager:
            raise ForbiddenError(code="MANAGER_REQUIRED", detail="Only managers can list all orders")
        if status:
            status = OrderStateMachine.parse(status).value

        async def _query(session: AsyncSession):
            stmt = (
                select(Order, User)
                .join(User, User.id == Order.user_id)
                .options(selectinload(Order.items))
                .order_by(Order.created_at.desc(), Order.id.desc())
            )
            if status:
                stmt = stmt.where(Order.status == status)
            rows = (await session.execute(stmt)).all()
            return [serialize_order(order, user) for order, user in rows]

        return await self.execute_with_session(_query)

    async def list_user_orders(self, principal: Principal, user_id: int) -> List[Dict[str, Any]]:
        """某个用户的订单（本人或管理员）"""
        if principal.id != user_id and not principal.is_manager:
            raise ForbiddenError(code="FORBIDDEN", detail="You can only view your own orders")

        async def _query(session: AsyncSession):
            await self.get_or_404(session, User, user_id, "User")
            stmt = (
                select(Order)
                .options(selectinload(Order.items))
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
            )
            orders = (await session.execute(stmt)).scalars().all()
            return [serialize_order(order) for order in orders]

        return await self.execute_with_session(_query)

    async def get_order(self, principal: Principal, order_id: int) -> Dict[str, Any]:
        """订单详情（下单人或管理员）"""
        async def _query(session: AsyncSession):
            stmt = select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
            order = (await session.execute(stmt)).scalar_one_or_none()
            if order is None:
                raise NotFoundError(code="ORDER_NOT_FOUND", resource="Order")
            if order.user_id != principal.id and not principal.is_manager:
                raise ForbiddenError(code="FORBIDDEN", detail="You can only view your own orders")
            return serialize_order(order)

        return await self.execute_with_session(_query)

    # ========== 改状态 ==========

    async def _lock_order(self, session: AsyncSession, order_id: int) -> Order:
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .with_for_update()
        )
        order = (await session.execute(stmt)).scalar_one_or_none()
        if order is None:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource="Order")
        return order

    async def update_status(
        self,
        principal: Principal,
        order_id: int,
        status: str,
        admin_note: Optional[str] = None,
    ) -> ServiceResult[Dict[str, Any]]:
        """
        后台修改订单状态

        refund-approved / refund-denied 转交退款审批流程处理，
        保证申请记录和订单状态一致。
        """
        if not principal.is_manager:
            raise ForbiddenError(code="MANAGER_REQUIRED", detail="Only managers can update order status")

        target = OrderStateMachine.parse(status)

        if target in REFUND_DECISIONS:
            refund_id = await self.refund_service.pending_refund_id(order_id)
            if refund_id is not None:
                decide = getattr(self.refund_service, REFUND_DECISIONS[target])
                decision = await decide(principal, refund_id, admin_note)
                return ServiceResult.ok(
                    {"order_id": order_id, "status": decision["order_status"], "refund": decision["refund"]},
                    metadata={"changed": True},
                )

            # 订单不存在优先报 404；已是该状态时按普通的状态不变处理
            order = await self.get_order(principal, order_id)
            if order["status"] != target.value:
                raise InvalidStateError(
                    code="NO_PENDING_REFUND",
                    detail="Order has no pending refund request",
                )

        return await self.execute_with_transaction(
            self._update_status_tx, principal, order_id, target, admin_note
        )

    async def _update_status_tx(
        self,
        session: AsyncSession,
        principal: Principal,
        order_id: int,
        target: OrderStatus,
        admin_note: Optional[str],
    ) -> ServiceResult[Dict[str, Any]]:
        order = await self._lock_order(session, order_id)

        if order.status == target.value:
            # 状态不变，只更新备注，不发通知
            if admin_note is not None:
                order.admin_note = admin_note
                await session.flush()
            return ServiceResult.ok(serialize_order(order), metadata={"changed": False})

        OrderStateMachine.ensure_transition(order.status, target, principal, order.user_id)

        values: Dict[str, Any] = {}
        if admin_note is not None:
            values["admin_note"] = admin_note
        if target == OrderStatus.DELIVERED:
            values["delivered_at"] = utcnow()
        if target == OrderStatus.CANCELLED and admin_note:
            values["cancellation_reason"] = admin_note

        if target == OrderStatus.REFUND_REQUESTED:
            # 后台代顾客发起，同时建立待审批的申请
            reason = admin_note or "Requested by store staff"
            values["refund_reason"] = reason
            await self.create(session, RefundRequest, {
                "order_id": order.id,
                "user_id": order.user_id,
                "reason": reason,
                "status": RefundStatus.PENDING.value,
                "requested_at": utcnow(),
            })

        await apply_transition(session, order, target, **values)

        if OrderStateMachine.is_stock_restoring(target.value):
            await self.stock_service.restore_order_stock(session, order)

        await self.notification_service.record_order_event(
            session, order, target.value, additional_info=admin_note
        )
        return ServiceResult.ok(serialize_order(order), metadata={"changed": True})

    # ========== 顾客取消 ==========

    async def cancel_order(
        self,
        principal: Principal,
        order_id: int,
        reason: Optional[str] = None,
    ) -> ServiceResult[Dict[str, Any]]:
        """
        顾客取消自己的订单

        只有 processing 状态可以取消，取消后回补库存。

        Raises:
            NotFoundError: 订单不存在
            ForbiddenError: 不是自己的订单
            InvalidStateError: 订单已不在 processing
        """
        return await self.execute_with_transaction(self._cancel_order_tx, principal, order_id, reason)

    async def _cancel_order_tx(
        self,
        session: AsyncSession,
        principal: Principal,
        order_id: int,
        reason: Optional[str],
    ) -> ServiceResult[Dict[str, Any]]:
        order = await self._lock_order(session, order_id)

        if order.user_id != principal.id:
            raise ForbiddenError(code="NOT_ORDER_OWNER", detail="You can only cancel your own orders")

        if order.status != OrderStatus.PROCESSING.value:
            raise InvalidStateError(
                code="ORDER_NOT_CANCELLABLE",
                detail="Only orders in processing status can be cancelled",
                current_status=order.status,
            )

        OrderStateMachine.ensure_transition(order.status, OrderStatus.CANCELLED, principal, order.user_id)
        await apply_transition(session, order, OrderStatus.CANCELLED, cancellation_reason=reason)
        restored = await self.stock_service.restore_order_stock(session, order)
        await self.notification_service.record_order_event(
            session, order, OrderStatus.CANCELLED.value, additional_info=reason
        )

        self.logger.info("Order cancelled by customer", order_id=order.id, user_id=principal.id)
        return ServiceResult.ok(serialize_order(order), metadata={"restored_items": restored})
