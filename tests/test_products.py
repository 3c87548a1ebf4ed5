"""
商品后台测试：库存、上架、定价审批
"""
from decimal import Decimal

import pytest

from sf_core.models import Product
from sf_core.services import CardDetails, CheckoutItem
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError


async def test_product_manager_sets_stock(seed, product_service, principal_for):
    manager = await seed.user(role="product_manager")
    sales = await seed.user(role="sales_manager")
    product = await seed.product(stock=0)

    result = await product_service.set_stock(principal_for(manager), product.id, 12)
    assert result["stock"] == 12
    assert await seed.stock_of(product) == 12

    with pytest.raises(ForbiddenError) as exc_info:
        await product_service.set_stock(principal_for(sales), product.id, 1)
    assert exc_info.value.code == "PRODUCT_MANAGER_REQUIRED"

    with pytest.raises(ValidationError) as exc_info:
        await product_service.set_stock(principal_for(manager), product.id, -1)
    assert exc_info.value.code == "INVALID_STOCK"

    with pytest.raises(NotFoundError) as exc_info:
        await product_service.set_stock(principal_for(manager), 55555, 3)
    assert exc_info.value.code == "PRODUCT_NOT_FOUND"

    assert await seed.stock_of(product) == 12


async def test_product_manager_needs_approved_price_to_publish(seed, product_service, principal_for):
    manager = await seed.user(role="product_manager")
    sales = await seed.user(role="sales_manager")
    customer = await seed.user()
    draft = await seed.product(price="0", price_approved=False, visible=False)

    with pytest.raises(InvalidStateError) as exc_info:
        await product_service.set_visibility(principal_for(manager), draft.id, True)
    assert exc_info.value.code == "PRODUCT_PRICE_NOT_APPROVED"
    assert (await seed.get(Product, draft.id)).visible is False

    with pytest.raises(ForbiddenError):
        await product_service.set_visibility(principal_for(customer), draft.id, True)

    # 销售经理不受定价限制
    shown = await product_service.set_visibility(principal_for(sales), draft.id, True)
    assert shown["visible"] is True

    hidden = await product_service.set_visibility(principal_for(manager), draft.id, False)
    assert hidden["visible"] is False


async def test_price_approval_makes_product_sellable(seed, product_service, checkout_service, principal_for):
    sales = await seed.user(role="sales_manager")
    manager = await seed.user(role="product_manager")
    customer = await seed.user()
    draft = await seed.product(stock=4, price="0", price_approved=False, visible=False)

    with pytest.raises(ForbiddenError) as exc_info:
        await product_service.approve_price(principal_for(manager), draft.id, "12.50")
    assert exc_info.value.code == "SALES_MANAGER_REQUIRED"

    for bad in ("0", "-3", "abc"):
        with pytest.raises(ValidationError) as exc_info:
            await product_service.approve_price(principal_for(sales), draft.id, bad)
        assert exc_info.value.code == "INVALID_PRICE"

    approved = await product_service.approve_price(principal_for(sales), draft.id, "12.50")
    assert approved["price"] == "12.50"
    assert approved["price_approved"] is True
    assert approved["visible"] is True

    card = CardDetails(
        number="4111111111111111",
        holder="Kim Buyer",
        expiration_month=9,
        expiration_year=utcnow().year + 1,
        cvv="456",
    )
    result = await checkout_service.place_order(
        principal_for(customer), [CheckoutItem(draft.id, 2)], card, "1 Elm Street"
    )
    assert Decimal(result.data["total_amount"]) == Decimal("25.00")
    assert await seed.stock_of(draft) == 2


async def test_product_admin_endpoints(client, seed, auth_headers):
    manager = await seed.user(role="product_manager")
    sales = await seed.user(role="sales_manager")
    customer = await seed.user()
    product = await seed.product(stock=1, price="0", price_approved=False, visible=False)

    stock = await client.put(
        f"/api/products/admin/stock/{product.id}", json={"stock": 8}, headers=auth_headers(manager)
    )
    assert stock.status_code == 200
    assert stock.json()["data"]["stock"] == 8

    negative = await client.put(
        f"/api/products/admin/stock/{product.id}", json={"stock": -2}, headers=auth_headers(manager)
    )
    assert negative.status_code == 400
    assert negative.json()["code"] == "VALIDATION_ERROR"

    by_sales = await client.put(
        f"/api/products/admin/stock/{product.id}", json={"stock": 3}, headers=auth_headers(sales)
    )
    assert by_sales.status_code == 403
    assert by_sales.json()["code"] == "INSUFFICIENT_ROLE"

    publish = await client.patch(
        f"/api/products/admin/{product.id}/visibility", json={"visible": True}, headers=auth_headers(manager)
    )
    assert publish.status_code == 400
    assert publish.json()["code"] == "PRODUCT_PRICE_NOT_APPROVED"

    by_customer = await client.patch(
        f"/api/products/{product.id}/approve", json={"price": "9.99"}, headers=auth_headers(customer)
    )
    assert by_customer.status_code == 403

    approve = await client.patch(
        f"/api/products/{product.id}/approve", json={"price": "9.99"}, headers=auth_headers(sales)
    )
    assert approve.status_code == 200
    assert approve.json()["data"]["price"] == "9.99"
    assert approve.json()["data"]["visible"] is True

    missing = await client.patch("/api/products/424242/approve", json={"price": "9.99"}, headers=auth_headers(sales))
    assert missing.status_code == 404
    assert missing.json()["error"] == "Product not found"
