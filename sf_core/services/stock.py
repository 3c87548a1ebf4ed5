"""
库存服务
- 订单进入回补状态时按明细回补库存（每张订单只回补一次）
- 下单扣减库存
- 对账修复 reconcile 与差异扫描 find_discrepancies
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sf_core.config import Settings, get_settings
from sf_core.database import DatabaseManager
from sf_core.models import Order, OrderItem, Product, STOCK_RESTORING_STATUSES
from sf_core.utils.datetime_utils import utcnow, hours_between
from sf_core.utils.errors import (
    InternalServerError,
    InvalidStateError,
    NotFoundError,
    StockAlreadyRestoredError,
    ValidationError,
)
from .base import BaseService, RepositoryMixin

RESTORING_VALUES = sorted(s.value for s in STOCK_RESTORING_STATUSES)


@dataclass
class ReconcileResult:
    """对账结果"""
    order: Dict[str, Any]
    dry_run: bool
    items: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    committed: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "committed": self.committed,
            "order": self.order,
            "items": self.items,
            "errors": self.errors,
        }


class StockService(BaseService, RepositoryMixin):
    """库存服务"""

    def __init__(self, db_manager: Optional[DatabaseManager] = None, settings: Optional[Settings] = None):
        super().__init__(db_manager)
        self.settings = settings or get_settings()

    # ========== 事务内操作（调用方持有事务） ==========

    async def restore_order_stock(self, session: AsyncSession, order: Order) -> List[Dict[str, Any]]:
        """
        回补订单所有明细的库存，并写 stock_restored_at

        order 需已加锁且 items 已加载。已经回补过的订单直接跳过。
        任一明细失败都抛异常，由调用方事务整体回滚。
        """
        if order.stock_restored_at is not None:
            self.logger.warning(
                "Stock already restored, skipping",
                order_id=order.id,
                stock_restored_at=order.stock_restored_at.isoformat(),
            )
            return []

        restored = []
        # 按商品ID顺序加锁，避免并发死锁
        for item in sorted(order.items, key=lambda i: (i.product_id is None, i.product_id or 0)):
            if item.product_id is None:
                raise InternalServerError(
                    code="STOCK_RESTORE_FAILED",
                    detail=f"Order {order.id} item {item.id} references a deleted product"
                )

            product = await self.get_by_id(session, Product, item.product_id, for_update=True)
            if product is None:
                raise InternalServerError(
                    code="STOCK_RESTORE_FAILED",
                    detail=f"Product {item.product_id} not found while restoring order {order.id}"
                )

            previous = product.stock
            result = await session.execute(
                update(Product)
                .where(Product.id == item.product_id)
                .values(stock=Product.stock + item.quantity)
            )
            if result.rowcount != 1:
                raise InternalServerError(
                    code="STOCK_RESTORE_FAILED",
                    detail=f"Failed to update stock of product {item.product_id}"
                )

            restored.append({
                "product_id": item.product_id,
                "quantity": item.quantity,
                "previous_stock": previous,
                "new_stock": previous + item.quantity,
            })

        order.stock_restored_at = utcnow()
        await session.flush()

        self.logger.info(
            "Restored order stock",
            order_id=order.id,
            status=order.status,
            items=len(restored),
            units=sum(r["quantity"] for r in restored),
        )
        return restored

    async def decrement_stock(self, session: AsyncSession, product_id: int, quantity: int) -> None:
        """扣减库存，库存不足时抛 ValidationError（不会写成负数）"""
        result = await session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
        )
        if result.rowcount != 1:
            raise ValidationError(
                code="INSUFFICIENT_STOCK",
                detail=f"Insufficient stock for product {product_id}",
                product_id=product_id,
            )

    # ========== 对账修复 ==========

    async def reconcile(self, order_id: int, dry_run: bool = False, force: bool = False) -> ReconcileResult:
        """
        按订单明细重算并修复库存

        Args:
            order_id: 订单ID
            dry_run: 只报告将要做的修改，不写库
            force: 已有 stock_restored_at 时仍然再回补一次（人工确认后使用）

        Returns:
            ReconcileResult；逐条处理全部明细，只有全部成功才提交

        Raises:
            NotFoundError: 订单不存在
            InvalidStateError: 订单状态不需要回补库存
            StockAlreadyRestoredError: 已回补过且未指定 force
        """
        return await self.execute_with_session(self._reconcile_in_session, order_id, dry_run, force)

    async def _reconcile_in_session(
        self,
        session: AsyncSession,
        order_id: int,
        dry_run: bool,
        force: bool,
    ) -> ReconcileResult:
        stmt = select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        if not dry_run:
            stmt = stmt.with_for_update()
        order = (await session.execute(stmt)).scalar_one_or_none()

        if order is None:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource=f"Order {order_id}")

        if order.status not in RESTORING_VALUES:
            raise InvalidStateError(
                code="ORDER_STATUS_NOT_RESTORING",
                detail=f"Order status is {order.status}, which doesn't require stock restoration",
                current_status=order.status,
            )

        if not dry_run and order.stock_restored_at is not None and not force:
            raise StockAlreadyRestoredError(order.id, order.stock_restored_at.isoformat())

        result = ReconcileResult(
            order={
                "id": order.id,
                "status": order.status,
                "user_id": order.user_id,
                "created_at": order.created_at.isoformat(),
                "stock_restored_at": order.stock_restored_at.isoformat() if order.stock_restored_at else None,
            },
            dry_run=dry_run,
        )

        for item in order.items:
            entry = await self._reconcile_item(session, item, dry_run)
            result.items.append(entry)
            if entry["error"]:
                result.errors.append(f"Product {entry['product_id']}: {entry['error']}")

        if dry_run or result.errors:
            await session.rollback()
            if result.errors:
                # 整单回滚，之前写入的明细也未落库
                for entry in result.items:
                    if entry["updated"] or "new_stock" in entry:
                        entry["updated"] = False
                        entry.pop("new_stock", None)
                        entry["rolled_back"] = True
                self.logger.error(
                    "Reconciliation rolled back",
                    order_id=order_id,
                    errors=result.errors,
                )
            return result

        order.stock_restored_at = utcnow()
        await session.commit()
        result.committed = True

        self.logger.info(
            "Reconciled order stock",
            order_id=order_id,
            forced=force,
            items=len(result.items),
        )
        return result

    async def _reconcile_item(self, session: AsyncSession, item: OrderItem, dry_run: bool) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "current_stock": None,
            "stock_change": f"+{item.quantity}",
            "updated": False,
            "error": None,
        }

        if item.product_id is None:
            entry["error"] = "Product no longer exists"
            return entry

        product = await self.get_by_id(session, Product, item.product_id, for_update=not dry_run)
        if product is None:
            entry["error"] = "Product not found"
            return entry

        entry["product_name"] = product.name
        entry["current_stock"] = product.stock
        expected = product.stock + item.quantity

        if dry_run:
            entry["potential_new_stock"] = expected
            return entry

        update_result = await session.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(stock=Product.stock + item.quantity)
        )
        if update_result.rowcount != 1:
            entry["error"] = "Stock update affected no rows"
            return entry

        new_stock = (
            await session.execute(select(Product.stock).where(Product.id == item.product_id))
        ).scalar_one()
        entry["new_stock"] = new_stock
        if new_stock != expected:
            entry["error"] = f"Stock mismatch after update: expected {expected}, got {new_stock}"
            return entry

        entry["updated"] = True
        return entry

    # ========== 差异扫描 ==========

    async def find_discrepancies(self, limit: int = 100, min_age_hours: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        找出处于回补状态、但还没有回补标记的订单（只读）

        Args:
            limit: 最多返回多少张订单
            min_age_hours: 只看下单超过多少小时的订单，默认取配置
        """
        if min_age_hours is None:
            min_age_hours = self.settings.discrepancy_min_age_hours
        return await self.execute_with_session(self._find_discrepancies_query, limit, min_age_hours)

    async def _find_discrepancies_query(
        self,
        session: AsyncSession,
        limit: int,
        min_age_hours: int,
    ) -> List[Dict[str, Any]]:
        cutoff = utcnow() - timedelta(hours=min_age_hours)
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(
                Order.status.in_(RESTORING_VALUES),
                Order.stock_restored_at.is_(None),
                Order.created_at < cutoff,
                Order.items.any(),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
        )
        orders = (await session.execute(stmt)).scalars().all()

        product_ids = {item.product_id for order in orders for item in order.items if item.product_id}
        products: Dict[int, Product] = {}
        if product_ids:
            rows = await session.execute(select(Product).where(Product.id.in_(product_ids)))
            products = {p.id: p for p in rows.scalars().all()}

        discrepancies = []
        for order in orders:
            items = []
            for item in order.items:
                product = products.get(item.product_id)
                items.append({
                    "product_id": item.product_id,
                    "product_name": product.name if product else item.product_name,
                    "quantity": item.quantity,
                    "current_stock": product.stock if product else None,
                })
            discrepancies.append({
                "order_id": order.id,
                "status": order.status,
                "created_at": order.created_at.isoformat(),
                "age_hours": round(hours_between(order.created_at), 1),
                "items": items,
            })

        self.logger.info("Discrepancy scan finished", found=len(discrepancies), limit=limit)
        return discrepancies
