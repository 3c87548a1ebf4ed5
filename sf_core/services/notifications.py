"""
站内通知服务

record_order_event 在业务事务里同时写站内通知和 outbox 邮件事件；
其余方法是通知中心的读写接口。
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import Notification, NotificationType, Order, OrderStatus, User
from .auth_service import Principal
from .base import BaseService, RepositoryMixin
from .outbox import enqueue_event, TOPIC_ORDER_PLACED, TOPIC_ORDER_STATUS_CHANGED

ORDER_PLACED = "order_placed"

# 事件 -> (通知类型, 文案)
NOTIFICATION_TEMPLATES: Dict[str, tuple] = {
    ORDER_PLACED: (
        NotificationType.ORDER_PLACED,
        "Your Order #{order_id} has been placed successfully.",
    ),
    OrderStatus.IN_TRANSIT.value: (
        NotificationType.ORDER_STATUS,
        "Your Order #{order_id} is on the way!",
    ),
    OrderStatus.DELIVERED.value: (
        NotificationType.ORDER_STATUS,
        "Your Order #{order_id} has been delivered!",
    ),
    OrderStatus.CANCELLED.value: (
        NotificationType.ORDER_CANCELLED,
        "Your Order #{order_id} has been cancelled.",
    ),
    OrderStatus.REFUND_REQUESTED.value: (
        NotificationType.REFUND_REQUESTED,
        "Your refund request for Order #{order_id} has been submitted and is being reviewed. "
        "You will be notified when a decision is made.",
    ),
    OrderStatus.REFUND_APPROVED.value: (
        NotificationType.REFUND_APPROVED,
        "Your refund request for Order #{order_id} has been approved. "
        "The refund will be processed to your original payment method.",
    ),
    OrderStatus.REFUND_DENIED.value: (
        NotificationType.REFUND_DENIED,
        "Your refund request for Order #{order_id} has been denied.",
    ),
}


class NotificationService(BaseService, RepositoryMixin):
    """站内通知服务"""

    async def record_order_event(
        self,
        session: AsyncSession,
        order: Order,
        event: str,
        additional_info: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """
        记录一次订单事件（调用方持有事务）

        order.items 必须已经加载。

        Args:
            event: 新状态值，或 "order_placed"
            additional_info: 取消原因 / 退款原因 / 审批备注
            metadata: 合并进通知 metadata
        """
        notification_type, template = NOTIFICATION_TEMPLATES[event]
        message = template.format(order_id=order.id)
        if event == OrderStatus.REFUND_DENIED.value and additional_info:
            message += f" Reason: {additional_info}"

        notification = Notification(
            user_id=order.user_id,
            type=notification_type.value,
            message=message,
            extra={"order_id": order.id, "type": notification_type.value, **(metadata or {})},
            is_read=False,
        )
        session.add(notification)

        user = await session.get(User, order.user_id)
        await enqueue_event(
            session,
            topic=TOPIC_ORDER_PLACED if event == ORDER_PLACED else TOPIC_ORDER_STATUS_CHANGED,
            payload={
                "order_id": order.id,
                "user_id": order.user_id,
                "status": event,
                "recipient_email": user.email if user else None,
                "recipient_name": user.name if user else None,
                "additional_info": additional_info,
                "total_amount": str(order.total_amount),
                "items": [
                    {
                        "product_id": item.product_id,
                        "product_name": item.product_name,
                        "quantity": item.quantity,
                        "price": str(item.price),
                    }
                    for item in order.items
                ],
            },
            idempotency_key=f"order:{order.id}:{event}",
        )
        await session.flush()

        self.logger.info("Recorded order event", order_id=order.id, order_event=event)
        return notification

    async def list_for_user(self, principal: Principal, unread_only: bool = True) -> List[Dict[str, Any]]:
        """当前用户的通知，最新在前"""
        async def _query(session: AsyncSession):
            stmt = select(Notification).where(Notification.user_id == principal.id)
            if unread_only:
                stmt = stmt.where(Notification.is_read.is_(False))
            stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            rows = (await session.execute(stmt)).scalars().all()
            return [self._serialize(n) for n in rows]

        return await self.execute_with_session(_query)

    async def count_unread(self, principal: Principal) -> int:
        async def _query(session: AsyncSession):
            stmt = select(func.count(Notification.id)).where(
                Notification.user_id == principal.id,
                Notification.is_read.is_(False),
            )
            return int((await session.execute(stmt)).scalar_one())

        return await self.execute_with_session(_query)

    async def mark_as_read(self, principal: Principal, notification_ids: Optional[List[int]] = None) -> int:
        """标记已读，ids 为空时标记全部"""
        async def _update(session: AsyncSession):
            stmt = (
                update(Notification)
                .where(Notification.user_id == principal.id, Notification.is_read.is_(False))
                .values(is_read=True)
            )
            if notification_ids:
                stmt = stmt.where(Notification.id.in_(notification_ids))
            result = await session.execute(stmt)
            return result.rowcount

        return await self.execute_with_transaction(_update)

    async def delete(self, principal: Principal, notification_id: int) -> bool:
        """删除自己的通知，不存在或不属于自己时返回 False"""
        async def _delete(session: AsyncSession):
            result = await session.execute(
                delete(Notification).where(
                    Notification.id == notification_id,
                    Notification.user_id == principal.id,
                )
            )
            return result.rowcount > 0

        return await self.execute_with_transaction(_delete)

    @staticmethod
    def _serialize(notification: Notification) -> Dict[str, Any]:
        data = notification.to_dict()
        data["metadata"] = notification.extra or {}
        return data
