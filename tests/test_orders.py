"""
订单服务测试：顾客取消、后台改状态
"""
import pytest

from sf_core.models import Notification, Order, OutboxEvent, RefundRequest
from sf_core.utils.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError


async def test_customer_cancels_processing_order(seed, order_service, principal_for):
    customer = await seed.user()
    shirt = await seed.product(stock=10)
    mug = await seed.product(stock=1)
    order = await seed.order(customer, [(shirt, 3), (mug, 2)])

    result = await order_service.cancel_order(principal_for(customer), order.id, "Changed my mind")

    assert result.data["status"] == "cancelled"
    assert result.data["cancellation_reason"] == "Changed my mind"
    assert result.data["stock_restored_at"] is not None
    assert len(result.metadata["restored_items"]) == 2
    assert await seed.stock_of(shirt) == 13
    assert await seed.stock_of(mug) == 3

    notifications = await seed.rows(Notification, user_id=customer.id)
    assert [n.type for n in notifications] == ["order_cancelled"]
    assert notifications[0].message == f"Your Order #{order.id} has been cancelled."

    events = await seed.rows(OutboxEvent)
    assert [e.idempotency_key for e in events] == [f"order:{order.id}:cancelled"]
    assert events[0].payload["additional_info"] == "Changed my mind"


async def test_cancel_checks_owner_before_status(seed, order_service, principal_for):
    owner = await seed.user()
    other = await seed.user()
    product = await seed.product(stock=10)
    shipped = await seed.order(owner, [(product, 1)], status="in-transit")

    with pytest.raises(ForbiddenError) as exc_info:
        await order_service.cancel_order(principal_for(other), shipped.id)
    assert exc_info.value.code == "NOT_ORDER_OWNER"

    with pytest.raises(InvalidStateError) as exc_info:
        await order_service.cancel_order(principal_for(owner), shipped.id)
    assert exc_info.value.code == "ORDER_NOT_CANCELLABLE"
    assert exc_info.value.status == 400

    with pytest.raises(NotFoundError):
        await order_service.cancel_order(principal_for(owner), 424242)

    assert await seed.stock_of(product) == 10
    assert await seed.rows(Notification) == []


async def test_cancel_twice_does_not_restore_twice(seed, order_service, principal_for):
    customer = await seed.user()
    product = await seed.product(stock=0)
    order = await seed.order(customer, [(product, 5)])

    await order_service.cancel_order(principal_for(customer), order.id)
    with pytest.raises(InvalidStateError):
        await order_service.cancel_order(principal_for(customer), order.id)

    assert await seed.stock_of(product) == 5


async def test_manager_moves_order_through_fulfilment(seed, order_service, principal_for):
    manager = await seed.user(role="product_manager")
    customer = await seed.user()
    product = await seed.product(stock=10)
    order = await seed.order(customer, [(product, 2)])
    staff = principal_for(manager)

    shipped = await order_service.update_status(staff, order.id, "in-transit", "Shipped with DHL")
    assert shipped.data["status"] == "in-transit"
    assert shipped.data["admin_note"] == "Shipped with DHL"
    assert shipped.metadata["changed"] is True

    delivered = await order_service.update_status(staff, order.id, "delivered")
    assert delivered.data["delivered_at"] is not None

    types = [n.type for n in await seed.rows(Notification, user_id=customer.id)]
    assert types == ["order_status", "order_status"]
    assert await seed.stock_of(product) == 10


async def test_same_status_only_updates_note(seed, order_service, principal_for):
    manager = await seed.user(role="sales_manager")
    customer = await seed.user()
    product = await seed.product()
    order = await seed.order(customer, [(product, 1)])

    result = await order_service.update_status(principal_for(manager), order.id, "processing", "Packing")

    assert result.metadata["changed"] is False
    assert (await seed.get(Order, order.id)).admin_note == "Packing"
    assert await seed.rows(Notification) == []


async def test_update_status_rejections(seed, order_service, principal_for):
    manager = await seed.user(role="product_manager")
    customer = await seed.user()
    product = await seed.product()
    delivered = await seed.order(customer, [(product, 1)], status="delivered")

    with pytest.raises(InvalidStateError):
        await order_service.update_status(principal_for(manager), delivered.id, "processing")

    with pytest.raises(ValidationError) as exc_info:
        await order_service.update_status(principal_for(manager), delivered.id, "shipped")
    assert exc_info.value.code == "INVALID_STATUS"

    with pytest.raises(ForbiddenError):
        await order_service.update_status(principal_for(customer), delivered.id, "in-transit")

    with pytest.raises(NotFoundError):
        await order_service.update_status(principal_for(manager), 77777, "in-transit")


async def test_manager_cancel_restores_stock(seed, order_service, principal_for):
    manager = await seed.user(role="product_manager")
    customer = await seed.user()
    product = await seed.product(stock=1)
    order = await seed.order(customer, [(product, 4)])

    result = await order_service.update_status(principal_for(manager), order.id, "cancelled", "Out of stock")

    assert result.data["status"] == "cancelled"
    assert result.data["cancellation_reason"] == "Out of stock"
    assert await seed.stock_of(product) == 5


async def test_refund_decision_via_status_goes_through_refund_flow(seed, order_service, principal_for):
    sales = await seed.user(role="sales_manager")
    customer = await seed.user()
    product = await seed.product(stock=3)
    order = await seed.order(customer, [(product, 2)])
    staff = principal_for(sales)

    with pytest.raises(InvalidStateError) as exc_info:
        await order_service.update_status(staff, order.id, "refund-approved")
    assert exc_info.value.code == "NO_PENDING_REFUND"

    requested = await order_service.update_status(staff, order.id, "refund-requested", "Damaged parcel")
    assert requested.data["refund_reason"] == "Damaged parcel"
    refunds = await seed.rows(RefundRequest, order_id=order.id)
    assert [r.status for r in refunds] == ["pending"]

    approved = await order_service.update_status(staff, order.id, "refund-approved", "OK")
    assert approved.data["status"] == "refund-approved"
    assert (await seed.get(RefundRequest, refunds[0].id)).status == "approved"
    assert await seed.stock_of(product) == 5


async def test_order_queries_respect_ownership(seed, order_service, principal_for):
    manager = await seed.user(role="product_manager")
    customer = await seed.user()
    other = await seed.user()
    product = await seed.product()
    order = await seed.order(customer, [(product, 1)])
    await seed.order(other, [(product, 1)], status="delivered")

    mine = await order_service.list_user_orders(principal_for(customer), customer.id)
    assert [o["id"] for o in mine] == [order.id]
    assert mine[0]["items"][0]["quantity"] == 1

    with pytest.raises(ForbiddenError):
        await order_service.list_user_orders(principal_for(other), customer.id)
    with pytest.raises(ForbiddenError):
        await order_service.get_order(principal_for(other), order.id)
    with pytest.raises(ForbiddenError):
        await order_service.list_orders(principal_for(customer))

    everything = await order_service.list_orders(principal_for(manager))
    assert len(everything) == 2
    assert {o["user_email"] for o in everything} == {customer.email, other.email}

    delivered_only = await order_service.list_orders(principal_for(manager), status="delivered")
    assert len(delivered_only) == 1


async def test_repeating_a_refund_decision_is_a_no_op(seed, order_service, principal_for):
    sales = await seed.user(role="sales_manager")
    customer = await seed.user()
    product = await seed.product(stock=4)
    approved = await seed.order(customer, [(product, 1)], status="refund-approved")
    denied = await seed.order(customer, [(product, 1)], status="refund-denied")
    staff = principal_for(sales)

    result = await order_service.update_status(staff, approved.id, "refund-approved", "Checked again")
    assert result.metadata["changed"] is False
    assert result.data["status"] == "refund-approved"
    assert (await seed.get(Order, approved.id)).admin_note == "Checked again"

    result = await order_service.update_status(staff, denied.id, "refund-denied")
    assert result.metadata["changed"] is False

    assert await seed.stock_of(product) == 4
    assert await seed.rows(Notification) == []

    with pytest.raises(InvalidStateError) as exc_info:
        await order_service.update_status(staff, denied.id, "refund-approved")
    assert exc_info.value.code == "NO_PENDING_REFUND"
