"""
退款服务
- 顾客提交退款申请（送达后 N 天内）
- 销售经理批准 / 拒绝，批准时回补库存
"""
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from sf_core.config import Settings, get_settings
from sf_core.database import DatabaseManager
from sf_core.models import Order, OrderStatus, RefundRequest, RefundStatus
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .auth_service import Principal
from .base import BaseService, RepositoryMixin
from .notifications import NotificationService
from .order_state import OrderStateMachine, apply_transition
from .stock import StockService

# 已有这些状态的申请时不能重复提交
OPEN_REFUND_STATUSES = (RefundStatus.PENDING.value, RefundStatus.APPROVED.value)


class RefundService(BaseService, RepositoryMixin):
    """退款服务"""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        stock_service: Optional[StockService] = None,
        notification_service: Optional[NotificationService] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db_manager)
        self.settings = settings or get_settings()
        self.stock_service = stock_service or StockService(self.db_manager, self.settings)
        self.notification_service = notification_service or NotificationService(self.db_manager)

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

    # ========== 提交申请 ==========

    async def request_refund(self, principal: Principal, order_id: int, reason: str) -> Dict[str, Any]:
        """
        提交退款申请

        Raises:
            NotFoundError: 订单不存在
            ForbiddenError: 不是自己的订单
            ConflictError: 已有未结束或已批准的申请
            InvalidStateError: 订单未送达或超过退款期限
        """
        if not reason or not reason.strip():
            raise ValidationError(code="REFUND_REASON_REQUIRED", detail="Refund reason is required")

        return await self.execute_with_transaction(self._request_refund_tx, principal, order_id, reason.strip())

    async def _request_refund_tx(
        self,
        session: AsyncSession,
        principal: Principal,
        order_id: int,
        reason: str,
    ) -> Dict[str, Any]:
        order = await self._lock_order(session, order_id)

        if order.user_id != principal.id:
            raise ForbiddenError(
                code="NOT_ORDER_OWNER",
                detail="You can only request refunds for your own orders"
            )

        existing = (await session.execute(
            select(RefundRequest.id).where(
                RefundRequest.order_id == order.id,
                RefundRequest.status.in_(OPEN_REFUND_STATUSES),
            ).limit(1)
        )).scalar_one_or_none()
        if existing is not None:
            raise ConflictError(
                code="REFUND_ALREADY_REQUESTED",
                detail="A refund request already exists for this order",
                refund_id=existing,
            )

        if order.status != OrderStatus.DELIVERED.value:
            raise InvalidStateError(
                code="ORDER_NOT_REFUNDABLE",
                detail="Only delivered orders can be refunded",
                current_status=order.status,
            )

        window = timedelta(days=self.settings.refund_window_days)
        if order.delivered_at is None or utcnow() - order.delivered_at > window:
            raise InvalidStateError(
                code="REFUND_WINDOW_EXPIRED",
                detail=f"Refund requests must be made within {self.settings.refund_window_days} days of delivery",
            )

        OrderStateMachine.ensure_transition(order.status, OrderStatus.REFUND_REQUESTED, principal, order.user_id)

        refund = await self.create(session, RefundRequest, {
            "order_id": order.id,
            "user_id": order.user_id,
            "reason": reason,
            "status": RefundStatus.PENDING.value,
            "requested_at": utcnow(),
        })
        await apply_transition(session, order, OrderStatus.REFUND_REQUESTED, refund_reason=reason)
        await self.notification_service.record_order_event(
            session,
            order,
            OrderStatus.REFUND_REQUESTED.value,
            additional_info=reason,
            metadata={"refund_id": refund.id, "reason": reason},
        )

        self.logger.info("Refund requested", order_id=order.id, refund_id=refund.id, user_id=principal.id)
        return refund.to_dict()

    # ========== 审批 ==========

    def _require_sales_manager(self, principal: Principal) -> None:
        if not principal.is_sales_manager:
            raise ForbiddenError(
                code="SALES_MANAGER_REQUIRED",
                detail="Only sales managers can process refund requests"
            )

    async def approve(self, principal: Principal, refund_id: int, admin_note: Optional[str] = None) -> Dict[str, Any]:
        """批准退款：订单 -> refund-approved，回补库存，全部在一个事务里"""
        self._require_sales_manager(principal)
        return await self.execute_with_transaction(
            self._decide_tx, principal, refund_id, RefundStatus.APPROVED, admin_note
        )

    async def reject(self, principal: Principal, refund_id: int, admin_note: Optional[str] = None) -> Dict[str, Any]:
        """拒绝退款：订单 -> refund-denied，库存不变"""
        self._require_sales_manager(principal)
        return await self.execute_with_transaction(
            self._decide_tx, principal, refund_id, RefundStatus.REJECTED, admin_note
        )

    async def _decide_tx(
        self,
        session: AsyncSession,
        principal: Principal,
        refund_id: int,
        decision: RefundStatus,
        admin_note: Optional[str],
    ) -> Dict[str, Any]:
        refund = await self.get_or_404(session, RefundRequest, refund_id, "Refund request", for_update=True)

        now = utcnow()
        values = {"status": decision.value, "decided_at": now, "admin_note": admin_note}
        if decision == RefundStatus.APPROVED:
            values["approved_at"] = now

        # 同一申请只能被决定一次，后到的请求影响 0 行
        result = await session.execute(
            update(RefundRequest)
            .where(RefundRequest.id == refund_id, RefundRequest.status == RefundStatus.PENDING.value)
            .values(**values)
        )
        if result.rowcount != 1:
            raise ConflictError(
                code="REFUND_ALREADY_PROCESSED",
                detail=f"This refund request has already been {refund.status}",
                refund_id=refund_id,
            )
        for key, value in values.items():
            set_committed_value(refund, key, value)

        target = OrderStatus.REFUND_APPROVED if decision == RefundStatus.APPROVED else OrderStatus.REFUND_DENIED
        order = await self._lock_order(session, refund.order_id)
        OrderStateMachine.ensure_transition(order.status, target, principal, order.user_id)
        await apply_transition(session, order, target, admin_note=admin_note)

        if OrderStateMachine.is_stock_restoring(target.value):
            await self.stock_service.restore_order_stock(session, order)

        await self.notification_service.record_order_event(
            session,
            order,
            target.value,
            additional_info=admin_note,
            metadata={"refund_id": refund.id, "admin_note": admin_note},
        )

        self.logger.info(
            "Refund decided",
            refund_id=refund_id,
            order_id=order.id,
            decision=decision.value,
            decided_by=principal.id,
        )
        return {"refund": refund.to_dict(), "order_id": order.id, "order_status": order.status}

    # ========== 查询 ==========

    async def pending_refund_id(self, order_id: int) -> Optional[int]:
        """订单当前 pending 的申请ID"""
        async def _query(session: AsyncSession):
            stmt = (
                select(RefundRequest.id)
                .where(RefundRequest.order_id == order_id, RefundRequest.status == RefundStatus.PENDING.value)
                .order_by(RefundRequest.id.desc())
                .limit(1)
            )
            return (await session.execute(stmt)).scalar_one_or_none()

        return await self.execute_with_session(_query)

    async def get_for_order(self, principal: Principal, order_id: int) -> Dict[str, Any]:
        """订单最近一次退款申请"""
        async def _query(session: AsyncSession):
            order = await self.get_or_404(session, Order, order_id, "Order")
            if not (principal.is_sales_manager or principal.id == order.user_id):
                raise ForbiddenError(code="FORBIDDEN", detail="Access denied")

            stmt = (
                select(RefundRequest)
                .where(RefundRequest.order_id == order_id)
                .order_by(RefundRequest.requested_at.desc(), RefundRequest.id.desc())
                .limit(1)
            )
            refund = (await session.execute(stmt)).scalar_one_or_none()
            if refund is None:
                raise NotFoundError(code="REFUND_NOT_FOUND", resource="Refund request")
            return refund.to_dict()

        return await self.execute_with_session(_query)
