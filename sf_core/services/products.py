"""
商品后台服务

库存、上架和售价审批决定一个商品能否在结账时售出。
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Union

from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import Product, UserRole
from sf_core.utils.errors import ForbiddenError, InvalidStateError, ValidationError
from .auth_service import Principal
from .base import BaseService, RepositoryMixin


class ProductService(BaseService, RepositoryMixin):
    """商品后台服务"""

    async def set_stock(self, principal: Principal, product_id: int, stock: int) -> Dict[str, Any]:
        """产品经理直接设置库存"""
        if principal.role != UserRole.PRODUCT_MANAGER:
            raise ForbiddenError(
                code="PRODUCT_MANAGER_REQUIRED",
                detail="Only product managers can update stock"
            )
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise ValidationError(code="INVALID_STOCK", detail="Stock must be a non-negative integer")

        async def _update(session: AsyncSession) -> Dict[str, Any]:
            product = await self.get_or_404(session, Product, product_id, "Product", for_update=True)
            previous = product.stock
            product.stock = stock
            await session.flush()
            self.logger.info("Product stock set", product_id=product_id, previous_stock=previous, new_stock=stock)
            return product.to_dict()

        return await self.execute_with_transaction(_update)

    async def set_visibility(self, principal: Principal, product_id: int, visible: bool) -> Dict[str, Any]:
        """
        上架 / 下架

        两类经理都可以操作；产品经理上架时，售价必须已由销售经理审批。
        """
        if not principal.is_manager:
            raise ForbiddenError(
                code="MANAGER_REQUIRED",
                detail="Only product or sales managers can update visibility"
            )

        async def _update(session: AsyncSession) -> Dict[str, Any]:
            product = await self.get_or_404(session, Product, product_id, "Product", for_update=True)
            if (
                visible
                and principal.role == UserRole.PRODUCT_MANAGER
                and (not product.price_approved or not product.price or product.price <= 0)
            ):
                raise InvalidStateError(
                    code="PRODUCT_PRICE_NOT_APPROVED",
                    detail="Products need to have a price set by a Sales Manager before they can be made visible",
                    product_id=product_id,
                )
            product.visible = bool(visible)
            await session.flush()
            self.logger.info("Product visibility changed", product_id=product_id, visible=product.visible)
            return product.to_dict()

        return await self.execute_with_transaction(_update)

    async def approve_price(
        self,
        principal: Principal,
        product_id: int,
        price: Union[Decimal, str, int, float],
    ) -> Dict[str, Any]:
        """销售经理定价并审批，审批后商品自动上架"""
        if not principal.is_sales_manager:
            raise ForbiddenError(
                code="SALES_MANAGER_REQUIRED",
                detail="Only sales managers can approve prices"
            )
        try:
            amount = Decimal(str(price)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            amount = None
        if amount is None or amount <= 0:
            raise ValidationError(code="INVALID_PRICE", detail="Invalid price. Price must be a positive number.")

        async def _update(session: AsyncSession) -> Dict[str, Any]:
            product = await self.get_or_404(session, Product, product_id, "Product", for_update=True)
            product.price = amount
            product.price_approved = True
            product.visible = True
            await session.flush()
            self.logger.info("Product price approved", product_id=product_id, price=str(amount))
            return product.to_dict()

        return await self.execute_with_transaction(_update)
