"""
事务外发件箱

写入端：enqueue_event 在业务事务里插入一行
投递端：OutboxDispatcher 提交后取出 pending 行交给各个 handler，至少投递一次
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.config import Settings, get_settings
from sf_core.database import DatabaseManager
from sf_core.event_bus import EventBus, get_event_bus
from sf_core.models import OutboxEvent, OutboxStatus
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.logger import get_logger
from .base import BaseService
from .email_service import EmailSender, render_status_email

logger = get_logger(__name__)

TOPIC_ORDER_PLACED = "sf.order.placed"
TOPIC_ORDER_STATUS_CHANGED = "sf.order.status_changed"


async def enqueue_event(
    session: AsyncSession,
    topic: str,
    payload: Dict[str, Any],
    idempotency_key: str,
) -> OutboxEvent:
    """在当前事务中写入一条待投递事件"""
    event = OutboxEvent(
        idempotency_key=idempotency_key,
        topic=topic,
        payload=payload,
        status=OutboxStatus.PENDING.value,
        attempts=0,
    )
    session.add(event)
    await session.flush()
    return event


class EmailNotificationHandler:
    """订单事件 -> 状态邮件"""

    name = "email"
    topics = (TOPIC_ORDER_PLACED, TOPIC_ORDER_STATUS_CHANGED)

    def __init__(self, sender: Optional[EmailSender] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.sender = sender or EmailSender(self.settings)

    def accepts(self, topic: str) -> bool:
        return topic in self.topics

    async def handle(self, event: OutboxEvent) -> None:
        payload = event.payload
        recipient = payload.get("recipient_email")
        if not recipient:
            logger.warning("Outbox event has no recipient, skipping email", event_key=event.idempotency_key)
            return

        rendered = render_status_email(
            status=payload["status"],
            order_id=payload["order_id"],
            name=payload.get("recipient_name"),
            additional_info=payload.get("additional_info"),
            items=payload.get("items"),
            total_amount=payload.get("total_amount"),
            refund_window_days=self.settings.refund_window_days,
        )
        await self.sender.send(recipient, rendered["subject"], rendered["body"])


class EventBusHandler:
    """订单事件 -> Redis Streams"""

    name = "event_bus"

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus or get_event_bus()

    def accepts(self, topic: str) -> bool:
        return True

    async def handle(self, event: OutboxEvent) -> None:
        await self.event_bus.publish(
            event.topic,
            event.payload,
            key=str(event.payload.get("order_id", "")),
            event_id=event.idempotency_key,
        )


class OutboxDispatcher(BaseService):
    """外发件箱投递器"""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        handlers: Optional[List[Any]] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db_manager)
        self.settings = settings or get_settings()
        self.handlers = handlers if handlers is not None else self._default_handlers()

    def _default_handlers(self) -> List[Any]:
        handlers: List[Any] = [EmailNotificationHandler(settings=self.settings)]
        if self.settings.event_bus_enabled:
            handlers.append(EventBusHandler())
        return handlers

    async def dispatch_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """
        投递所有 pending 事件

        Returns:
            {"delivered": n, "retrying": n, "failed": n}
        """
        return await self.execute_with_transaction(
            self._dispatch_pending_tx,
            limit or self.settings.outbox_batch_size,
        )

    async def dispatch_in_background(self) -> None:
        """请求结束后调用，投递失败只记日志，由定时任务重试"""
        try:
            stats = await self.dispatch_pending()
            if any(stats.values()):
                self.logger.info("Outbox dispatched", **stats)
        except Exception:
            self.logger.error("Outbox dispatch failed", exc_info=True)

    async def _dispatch_pending_tx(self, session: AsyncSession, limit: int) -> Dict[str, int]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.status == OutboxStatus.PENDING.value)
            .order_by(OutboxEvent.id)
            .limit(limit)
        )
        if self.db_manager.is_postgres:
            stmt = stmt.with_for_update(skip_locked=True)

        events = (await session.execute(stmt)).scalars().all()
        stats = {"delivered": 0, "retrying": 0, "failed": 0}

        for event in events:
            event.attempts += 1
            try:
                for handler in self.handlers:
                    if handler.accepts(event.topic):
                        await handler.handle(event)
            except Exception as e:
                event.last_error = f"{type(e).__name__}: {e}"[:1000]
                if event.attempts >= self.settings.outbox_max_attempts:
                    event.status = OutboxStatus.FAILED.value
                    stats["failed"] += 1
                    self.logger.error(
                        "Outbox event failed permanently",
                        event_key=event.idempotency_key,
                        attempts=event.attempts,
                        exc_info=True,
                    )
                else:
                    stats["retrying"] += 1
                    self.logger.warning(
                        "Outbox event delivery failed, will retry",
                        event_key=event.idempotency_key,
                        attempts=event.attempts,
                        error=event.last_error,
                    )
                continue

            event.status = OutboxStatus.DELIVERED.value
            event.delivered_at = utcnow()
            event.last_error = None
            stats["delivered"] += 1

        await session.flush()
        return stats
