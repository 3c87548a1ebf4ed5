"""
外发件箱与邮件测试
"""
import json

import pytest

from sf_core.database import DatabaseManager
from sf_core.event_bus import EventBus
from sf_core.models import OutboxEvent
from sf_core.services import EmailNotificationHandler, EventBusHandler, OutboxDispatcher
from sf_core.services.email_service import EmailSender, render_status_email


async def test_dispatch_delivers_each_event_once(seed, order_service, dispatcher, fake_sender, principal_for):
    customer = await seed.user(name="Ada")
    product = await seed.product()
    order = await seed.order(customer, [(product, 1)])
    await order_service.cancel_order(principal_for(customer), order.id, "Ordered twice")

    stats = await dispatcher.dispatch_pending()

    assert stats == {"delivered": 1, "retrying": 0, "failed": 0}
    assert len(fake_sender.sent) == 1
    mail = fake_sender.sent[0]
    assert mail["to"] == customer.email
    assert mail["subject"] == f"Your Order #{order.id} has been cancelled"
    assert "Hello Ada," in mail["body"]
    assert "Cancellation reason: Ordered twice" in mail["body"]

    event = (await seed.rows(OutboxEvent))[0]
    assert event.status == "delivered"
    assert event.attempts == 1
    assert event.delivered_at is not None

    assert await dispatcher.dispatch_pending() == {"delivered": 0, "retrying": 0, "failed": 0}
    assert len(fake_sender.sent) == 1


async def test_failed_delivery_retries_then_gives_up(seed, order_service, db_manager, settings, fake_sender, principal_for):
    customer = await seed.user()
    product = await seed.product()
    order = await seed.order(customer, [(product, 1)])
    await order_service.cancel_order(principal_for(customer), order.id)

    fake_sender.fail = True
    dispatcher = OutboxDispatcher(
        db_manager,
        handlers=[EmailNotificationHandler(fake_sender, settings)],
        settings=settings,
    )

    assert (await dispatcher.dispatch_pending())["retrying"] == 1
    assert (await dispatcher.dispatch_pending())["retrying"] == 1
    assert (await dispatcher.dispatch_pending())["failed"] == 1

    event = (await seed.rows(OutboxEvent))[0]
    assert event.status == "failed"
    assert event.attempts == settings.outbox_max_attempts
    assert "SMTP server unavailable" in event.last_error

    # 已失败的事件不再重试
    assert await dispatcher.dispatch_pending() == {"delivered": 0, "retrying": 0, "failed": 0}


async def test_background_dispatch_logs_instead_of_raising(settings, fake_sender):
    unreachable = DatabaseManager(settings, database_url="sqlite+aiosqlite:////nonexistent-dir/storefront.db")
    dispatcher = OutboxDispatcher(
        unreachable,
        handlers=[EmailNotificationHandler(fake_sender, settings)],
        settings=settings,
    )
    try:
        await dispatcher.dispatch_in_background()
    finally:
        await unreachable.close()
    assert fake_sender.sent == []


def test_render_status_email_templates():
    delivered = render_status_email("delivered", 42, name="Sam", refund_window_days=30)
    assert delivered["subject"] == "Your Order #42 has been delivered!"
    assert "within 30 days" in delivered["body"]

    denied = render_status_email("refund-denied", 42, additional_info="Used item")
    assert denied["subject"] == "Refund Request Denied for Order #42"
    assert "Hello Valued Customer," in denied["body"]
    assert "Reason: Used item" in denied["body"]

    placed = render_status_email(
        "order_placed", 7,
        items=[{"product_name": "Lamp", "quantity": 2, "price": "19.99"}],
        total_amount="39.98",
    )
    assert placed["subject"] == "Order #7 Confirmation"
    assert "Lamp x2  $39.98" in placed["body"]
    assert "Total: $39.98" in placed["body"]

    unknown = render_status_email("refunded", 9)
    assert unknown["subject"] == "Order #9 Update"


async def test_email_sender_without_smtp_host_skips(settings):
    assert await EmailSender(settings).send("a@example.com", "Hi", "Body") is False


class RecordingRedis:
    """只实现 xadd 的 Redis 替身"""

    def __init__(self):
        self.entries = []

    async def xadd(self, stream, fields):
        self.entries.append((stream, fields))
        return f"{len(self.entries)}-0"


async def test_event_bus_handler_publishes_to_stream(seed, order_service, db_manager, settings, principal_for):
    customer = await seed.user()
    product = await seed.product()
    order = await seed.order(customer, [(product, 1)])
    await order_service.cancel_order(principal_for(customer), order.id)

    bus = EventBus(settings)
    bus.redis_client = RecordingRedis()
    stats = await OutboxDispatcher(db_manager, handlers=[EventBusHandler(bus)], settings=settings).dispatch_pending()

    assert stats["delivered"] == 1
    stream, fields = bus.redis_client.entries[0]
    assert stream == "sf:events:sf.order.status_changed"
    assert fields["key"] == str(order.id)
    data = json.loads(fields["data"])
    assert data["event_id"] == f"order:{order.id}:cancelled"
    assert data["payload"]["status"] == "cancelled"


async def test_event_bus_rejects_foreign_topics(settings):
    bus = EventBus(settings)
    bus.redis_client = RecordingRedis()
    with pytest.raises(ValueError):
        await bus.publish("orders.created", {})
    assert bus.redis_client.entries == []
