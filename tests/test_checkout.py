"""
结账测试
"""
from decimal import Decimal

import pytest

from sf_core.models import Notification, Order, OutboxEvent, PaymentInfo
from sf_core.services import CardDetails, CheckoutItem
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import ValidationError


def valid_card(**overrides) -> CardDetails:
    data = dict(
        number="4111 1111 1111 1234",
        holder="Jane Doe",
        expiration_month=12,
        expiration_year=(utcnow().year + 2) % 100,
        cvv="123",
    )
    data.update(overrides)
    return CardDetails(**data)


async def test_place_order_decrements_stock_and_snapshots_prices(seed, checkout_service, principal_for):
    customer = await seed.user()
    lamp = await seed.product(stock=5, price="19.99")
    rug = await seed.product(stock=2, price="120.00")

    result = await checkout_service.place_order(
        principal_for(customer),
        [CheckoutItem(lamp.id, 2), CheckoutItem(rug.id, 1), CheckoutItem(lamp.id, 1)],
        valid_card(),
        "221B Baker Street",
    )

    order = result.data
    assert order["status"] == "processing"
    assert Decimal(order["total_amount"]) == Decimal("179.97")
    assert [(i["product_id"], i["quantity"], i["price"]) for i in order["items"]] == [
        (lamp.id, 3, "19.99"),
        (rug.id, 1, "120.00"),
    ]
    assert await seed.stock_of(lamp) == 2
    assert await seed.stock_of(rug) == 1

    payments = await seed.rows(PaymentInfo, order_id=order["id"])
    assert payments[0].card_last4 == "1234"
    assert payments[0].card_holder == "Jane Doe"

    assert [n.type for n in await seed.rows(Notification, user_id=customer.id)] == ["order_placed"]
    events = await seed.rows(OutboxEvent)
    assert events[0].topic == "sf.order.placed"
    assert events[0].payload["recipient_email"] == customer.email


async def test_insufficient_stock_rolls_back_whole_order(seed, checkout_service, principal_for):
    customer = await seed.user()
    plenty = await seed.product(stock=10)
    scarce = await seed.product(stock=1)

    with pytest.raises(ValidationError) as exc_info:
        await checkout_service.place_order(
            principal_for(customer),
            [CheckoutItem(plenty.id, 3), CheckoutItem(scarce.id, 2)],
            valid_card(),
            "Somewhere",
        )
    assert exc_info.value.code == "INSUFFICIENT_STOCK"

    assert await seed.stock_of(plenty) == 10
    assert await seed.stock_of(scarce) == 1
    assert await seed.rows(Order) == []
    assert await seed.rows(OutboxEvent) == []


async def test_unavailable_products_are_refused(seed, checkout_service, principal_for):
    customer = await seed.user()
    hidden = await seed.product(visible=False)
    unpriced = await seed.product(price_approved=False)

    with pytest.raises(ValidationError) as exc_info:
        await checkout_service.place_order(principal_for(customer), [CheckoutItem(hidden.id, 1)], valid_card(), "X")
    assert exc_info.value.code == "PRODUCT_NOT_AVAILABLE"

    with pytest.raises(ValidationError) as exc_info:
        await checkout_service.place_order(principal_for(customer), [CheckoutItem(unpriced.id, 1)], valid_card(), "X")
    assert exc_info.value.code == "PRODUCT_PRICE_NOT_APPROVED"

    with pytest.raises(ValidationError) as exc_info:
        await checkout_service.place_order(principal_for(customer), [CheckoutItem(31337, 1)], valid_card(), "X")
    assert exc_info.value.code == "PRODUCT_NOT_AVAILABLE"


@pytest.mark.parametrize("overrides,code", [
    ({"number": "4111"}, "INVALID_CARD_NUMBER"),
    ({"number": ""}, "MISSING_PAYMENT_INFO"),
    ({"expiration_month": 13}, "INVALID_EXPIRATION"),
    ({"expiration_year": 20, "expiration_month": 1}, "CARD_EXPIRED"),
    ({"cvv": "12a"}, "INVALID_CVV"),
])
def test_card_validation(checkout_service, overrides, code):
    with pytest.raises(ValidationError) as exc_info:
        checkout_service.validate_card(valid_card(**overrides))
    assert exc_info.value.code == code


def test_merge_items_validation(checkout_service):
    with pytest.raises(ValidationError) as exc_info:
        checkout_service.merge_items([])
    assert exc_info.value.code == "EMPTY_ORDER"

    with pytest.raises(ValidationError) as exc_info:
        checkout_service.merge_items([CheckoutItem(1, 0)])
    assert exc_info.value.code == "INVALID_QUANTITY"

    assert dict(checkout_service.merge_items([CheckoutItem(2, 1), CheckoutItem(2, 4)])) == {2: 5}


async def test_shipping_address_required(seed, checkout_service, principal_for):
    customer = await seed.user()
    product = await seed.product()

    with pytest.raises(ValidationError) as exc_info:
        await checkout_service.place_order(principal_for(customer), [CheckoutItem(product.id, 1)], valid_card(), " ")
    assert exc_info.value.code == "SHIPPING_ADDRESS_REQUIRED"
    assert await seed.stock_of(product) == 10
