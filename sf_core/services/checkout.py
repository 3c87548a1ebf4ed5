"""
结账服务
下单、扣库存、记录支付信息在同一个事务里完成
"""
import re
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.database import DatabaseManager
from sf_core.models import Order, OrderItem, OrderStatus, PaymentInfo, Product, User
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.errors import NotFoundError, ValidationError
from .auth_service import Principal
from .base import BaseService, RepositoryMixin, ServiceResult
from .notifications import NotificationService, ORDER_PLACED
from .orders import serialize_order
from .stock import StockService

CARD_NUMBER_RE = re.compile(r"^\d{16}$")
CVV_RE = re.compile(r"^\d{3,4}$")


@dataclass
class CardDetails:
    number: str
    holder: str
    expiration_month: int
    expiration_year: int
    cvv: str


@dataclass
class CheckoutItem:
    product_id: int
    quantity: int


class CheckoutService(BaseService, RepositoryMixin):
    """结账服务"""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        stock_service: Optional[StockService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db_manager)
        self.stock_service = stock_service or StockService(self.db_manager)
        self.notification_service = notification_service or NotificationService(self.db_manager)

    def validate_card(self, card: CardDetails) -> str:
        """校验卡信息，返回去掉空格的卡号"""
        number = re.sub(r"\s", "", card.number or "")
        if not number or not card.holder or not card.cvv:
            raise ValidationError(code="MISSING_PAYMENT_INFO", detail="Missing payment information")
        if not CARD_NUMBER_RE.match(number):
            raise ValidationError(code="INVALID_CARD_NUMBER", detail="Card number must be 16 digits")
        if not 1 <= card.expiration_month <= 12:
            raise ValidationError(code="INVALID_EXPIRATION", detail="Expiration month must be between 1 and 12")

        year = card.expiration_year + 2000 if card.expiration_year < 100 else card.expiration_year
        now = utcnow()
        if (year, card.expiration_month) < (now.year, now.month):
            raise ValidationError(code="CARD_EXPIRED", detail="Card has expired")
        if not CVV_RE.match(card.cvv):
            raise ValidationError(code="INVALID_CVV", detail="CVV must be 3 or 4 digits")
        return number

    @staticmethod
    def merge_items(items: List[CheckoutItem]) -> "OrderedDict[int, int]":
        """同一商品合并数量，并校验数量为正"""
        if not items:
            raise ValidationError(code="EMPTY_ORDER", detail="No items in order")

        merged: "OrderedDict[int, int]" = OrderedDict()
        for item in items:
            if item.quantity <= 0:
                raise ValidationError(
                    code="INVALID_QUANTITY",
                    detail=f"Quantity for product {item.product_id} must be positive",
                )
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
        return merged

    async def place_order(
        self,
        principal: Principal,
        items: List[CheckoutItem],
        card: CardDetails,
        shipping_address: Optional[str],
    ) -> ServiceResult[Dict[str, Any]]:
        """
        下单

        价格取商品当前售价，订单总额在服务端计算。
        任一商品缺货或不可售都整体回滚。
        """
        card_number = self.validate_card(card)
        merged = self.merge_items(items)
        if not shipping_address or not shipping_address.strip():
            raise ValidationError(code="SHIPPING_ADDRESS_REQUIRED", detail="Shipping address is required")

        return await self.execute_with_transaction(
            self._place_order_tx,
            principal,
            merged,
            card.holder.strip(),
            card_number[-4:],
            shipping_address.strip(),
        )

    async def _place_order_tx(
        self,
        session: AsyncSession,
        principal: Principal,
        merged: "OrderedDict[int, int]",
        card_holder: str,
        card_last4: str,
        shipping_address: str,
    ) -> ServiceResult[Dict[str, Any]]:
        user = await session.get(User, principal.id)
        if user is None:
            raise NotFoundError(code="USER_NOT_FOUND", resource="User")

        # 按商品ID顺序加锁
        product_ids = sorted(merged)
        rows = await session.execute(
            select(Product).where(Product.id.in_(product_ids)).order_by(Product.id).with_for_update()
        )
        products = {p.id: p for p in rows.scalars().all()}

        order_items = []
        total = Decimal("0")
        for product_id, quantity in merged.items():
            product = products.get(product_id)
            if product is None or not product.visible:
                raise ValidationError(code="PRODUCT_NOT_AVAILABLE", detail=f"Product not found: {product_id}")
            if not product.price_approved:
                raise ValidationError(
                    code="PRODUCT_PRICE_NOT_APPROVED",
                    detail=f"Product {product_id} is not available for sale yet",
                )
            if product.stock < quantity:
                raise ValidationError(
                    code="INSUFFICIENT_STOCK",
                    detail=f"Insufficient stock for product ID {product_id}",
                    product_id=product_id,
                    available=product.stock,
                )

            await self.stock_service.decrement_stock(session, product_id, quantity)
            order_items.append(OrderItem(
                product_id=product_id,
                product_name=product.name,
                quantity=quantity,
                price=product.price,
            ))
            total += product.price * quantity

        order = Order(
            user_id=principal.id,
            total_amount=total,
            status=OrderStatus.PROCESSING.value,
            delivery_address=shipping_address,
            items=order_items,
            payment=PaymentInfo(card_holder=card_holder, card_last4=card_last4),
        )
        session.add(order)
        await session.flush()

        await self.notification_service.record_order_event(session, order, ORDER_PLACED)

        self.logger.info(
            "Order placed",
            order_id=order.id,
            user_id=principal.id,
            items=len(order_items),
            total_amount=str(total),
        )
        return ServiceResult.ok(serialize_order(order))
