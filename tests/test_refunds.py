"""
退款流程测试
"""
from datetime import timedelta

import pytest

from sf_core.models import Notification, Order, OutboxEvent, RefundRequest
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import ConflictError, ForbiddenError, InvalidStateError, ValidationError


async def _delivered_order(seed, customer, product, quantity=2, days_since_delivery=3):
    return await seed.order(
        customer,
        [(product, quantity)],
        status="delivered",
        created_at=utcnow() - timedelta(days=days_since_delivery + 2),
        delivered_at=utcnow() - timedelta(days=days_since_delivery),
    )


async def test_request_refund_within_window(seed, refund_service, principal_for):
    customer = await seed.user()
    product = await seed.product(stock=4)
    order = await _delivered_order(seed, customer, product)

    refund = await refund_service.request_refund(principal_for(customer), order.id, "  Wrong size  ")

    assert refund["status"] == "pending"
    assert refund["reason"] == "Wrong size"
    stored = await seed.get(Order, order.id)
    assert stored.status == "refund-requested"
    assert stored.refund_reason == "Wrong size"
    assert await seed.stock_of(product) == 4

    notifications = await seed.rows(Notification, user_id=customer.id)
    assert [n.type for n in notifications] == ["refund_requested"]
    assert notifications[0].extra["refund_id"] == refund["id"]


async def test_request_refund_rejections(seed, refund_service, principal_for):
    customer = await seed.user()
    stranger = await seed.user()
    product = await seed.product()
    processing = await seed.order(customer, [(product, 1)])
    expired = await _delivered_order(seed, customer, product, days_since_delivery=31)
    fresh = await _delivered_order(seed, customer, product)

    with pytest.raises(ValidationError):
        await refund_service.request_refund(principal_for(customer), fresh.id, "   ")

    with pytest.raises(InvalidStateError) as exc_info:
        await refund_service.request_refund(principal_for(customer), processing.id, "Too slow")
    assert exc_info.value.code == "ORDER_NOT_REFUNDABLE"

    with pytest.raises(InvalidStateError) as exc_info:
        await refund_service.request_refund(principal_for(customer), expired.id, "Broken")
    assert exc_info.value.code == "REFUND_WINDOW_EXPIRED"

    with pytest.raises(ForbiddenError):
        await refund_service.request_refund(principal_for(stranger), fresh.id, "Not mine")

    await refund_service.request_refund(principal_for(customer), fresh.id, "Broken")
    with pytest.raises(ConflictError) as exc_info:
        await refund_service.request_refund(principal_for(customer), fresh.id, "Broken again")
    assert exc_info.value.code == "REFUND_ALREADY_REQUESTED"
    assert exc_info.value.status == 400

    assert len(await seed.rows(RefundRequest, order_id=fresh.id)) == 1


async def test_approve_restores_stock_once_and_blocks_second_decision(seed, refund_service, principal_for):
    customer = await seed.user()
    sales = await seed.user(role="sales_manager")
    product = await seed.product(stock=0)
    order = await _delivered_order(seed, customer, product, quantity=3)
    refund = await refund_service.request_refund(principal_for(customer), order.id, "Defective")

    result = await refund_service.approve(principal_for(sales), refund["id"], "Approved after inspection")

    assert result["order_status"] == "refund-approved"
    assert result["refund"]["status"] == "approved"
    assert result["refund"]["approved_at"] is not None
    assert await seed.stock_of(product) == 3
    stored = await seed.get(Order, order.id)
    assert stored.stock_restored_at is not None
    assert stored.admin_note == "Approved after inspection"

    with pytest.raises(ConflictError) as exc_info:
        await refund_service.reject(principal_for(sales), refund["id"], "Changed mind")
    assert exc_info.value.code == "REFUND_ALREADY_PROCESSED"

    assert await seed.stock_of(product) == 3
    assert (await seed.get(Order, order.id)).status == "refund-approved"
    types = [n.type for n in await seed.rows(Notification, user_id=customer.id)]
    assert types == ["refund_requested", "refund_approved"]


async def test_reject_keeps_stock_and_explains_reason(seed, refund_service, principal_for):
    customer = await seed.user()
    sales = await seed.user(role="sales_manager")
    product = await seed.product(stock=6)
    order = await _delivered_order(seed, customer, product)
    refund = await refund_service.request_refund(principal_for(customer), order.id, "Don't like it")

    result = await refund_service.reject(principal_for(sales), refund["id"], "Item was used")

    assert result["order_status"] == "refund-denied"
    assert await seed.stock_of(product) == 6
    assert (await seed.get(Order, order.id)).stock_restored_at is None

    denied = (await seed.rows(Notification, type="refund_denied"))[0]
    assert denied.message.endswith("has been denied. Reason: Item was used")

    # 被拒绝后不能再次申请（订单已是终态）
    with pytest.raises(InvalidStateError):
        await refund_service.request_refund(principal_for(customer), order.id, "Please reconsider")


async def test_only_sales_manager_decides(seed, refund_service, principal_for):
    customer = await seed.user()
    product_manager = await seed.user(role="product_manager")
    product = await seed.product()
    order = await _delivered_order(seed, customer, product)
    refund = await refund_service.request_refund(principal_for(customer), order.id, "Late")

    with pytest.raises(ForbiddenError) as exc_info:
        await refund_service.approve(principal_for(product_manager), refund["id"])
    assert exc_info.value.code == "SALES_MANAGER_REQUIRED"

    with pytest.raises(ForbiddenError):
        await refund_service.reject(principal_for(customer), refund["id"])

    assert (await seed.get(RefundRequest, refund["id"])).status == "pending"


async def test_get_for_order_visibility(seed, refund_service, principal_for):
    customer = await seed.user()
    stranger = await seed.user()
    sales = await seed.user(role="sales_manager")
    product = await seed.product()
    order = await _delivered_order(seed, customer, product)
    refund = await refund_service.request_refund(principal_for(customer), order.id, "Late")

    assert (await refund_service.get_for_order(principal_for(customer), order.id))["id"] == refund["id"]
    assert (await refund_service.get_for_order(principal_for(sales), order.id))["id"] == refund["id"]
    with pytest.raises(ForbiddenError):
        await refund_service.get_for_order(principal_for(stranger), order.id)


async def test_losing_decision_leaves_one_terminal_state(seed, refund_service, principal_for):
    customer = await seed.user()
    sales = await seed.user(role="sales_manager")
    other_sales = await seed.user(role="sales_manager")
    product = await seed.product(stock=2)
    order = await _delivered_order(seed, customer, product)
    refund = await refund_service.request_refund(principal_for(customer), order.id, "Scratched")

    await refund_service.reject(principal_for(sales), refund["id"], "Wear and tear")
    with pytest.raises(ConflictError) as exc_info:
        await refund_service.approve(principal_for(other_sales), refund["id"], "Looks fine")
    assert exc_info.value.code == "REFUND_ALREADY_PROCESSED"

    assert (await seed.get(RefundRequest, refund["id"])).status == "rejected"
    stored = await seed.get(Order, order.id)
    assert stored.status == "refund-denied"
    assert stored.stock_restored_at is None
    assert await seed.stock_of(product) == 2

    decisions = await seed.rows(Notification, user_id=customer.id)
    assert len(decisions) == 2
    assert [n.type for n in decisions] == ["refund_requested", "refund_denied"]
    keys = [e.idempotency_key for e in await seed.rows(OutboxEvent)]
    assert keys == [f"order:{order.id}:refund-requested", f"order:{order.id}:refund-denied"]
