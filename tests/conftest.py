"""
Pytest 配置和 fixtures

每个测试使用独立的内存 SQLite 库（aiosqlite），不依赖外部 PostgreSQL/Redis/SMTP。
"""
import itertools
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from sf_core.config import Settings
from sf_core.database import DatabaseManager
from sf_core.models import Order, OrderItem, Product, User
from sf_core.services import (
    AuthService,
    CheckoutService,
    EmailNotificationHandler,
    NotificationService,
    OrderService,
    OutboxDispatcher,
    Principal,
    ProductService,
    RefundService,
    StockService,
)
from sf_core.utils.datetime_utils import utcnow

_seq = itertools.count(1)


class FakeEmailSender:
    """记录发送内容的邮件发送器"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> bool:
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append({"to": to, "subject": subject, "body": body})
        return True


class Seeder:
    """测试数据构造与查询"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def user(self, role: str = "customer", name: Optional[str] = None) -> User:
        n = next(_seq)
        user = User(name=name or f"User {n}", email=f"user{n}@example.com", role=role)
        async with self.db_manager.get_transaction() as session:
            session.add(user)
        return user

    async def product(self, stock: int = 10, price: str = "25.00", **kwargs) -> Product:
        n = next(_seq)
        product = Product(name=kwargs.pop("name", f"Product {n}"), stock=stock, price=Decimal(price), **kwargs)
        async with self.db_manager.get_transaction() as session:
            session.add(product)
        return product

    async def order(
        self,
        user: User,
        lines: Sequence[Tuple[Optional[Product], int]],
        status: str = "processing",
        created_at: Optional[datetime] = None,
        delivered_at: Optional[datetime] = None,
        stock_restored_at: Optional[datetime] = None,
    ) -> Order:
        """直接写入订单（不扣库存），lines 为 (商品, 数量)，商品为 None 表示已删除"""
        items = [
            OrderItem(
                product_id=product.id if product else None,
                product_name=product.name if product else "Deleted product",
                quantity=quantity,
                price=product.price if product else Decimal("10.00"),
            )
            for product, quantity in lines
        ]
        order = Order(
            user_id=user.id,
            total_amount=sum((i.price * i.quantity for i in items), Decimal("0")),
            status=status,
            delivery_address="1 Test Street",
            created_at=created_at or utcnow(),
            delivered_at=delivered_at,
            stock_restored_at=stock_restored_at,
            items=items,
        )
        async with self.db_manager.get_transaction() as session:
            session.add(order)
        return order

    async def get(self, model, record_id: int):
        async with self.db_manager.get_session() as session:
            return await session.get(model, record_id)

    async def stock_of(self, product: Product) -> int:
        return (await self.get(Product, product.id)).stock

    async def rows(self, model, **filters) -> List[Any]:
        async with self.db_manager.get_session() as session:
            result = await session.execute(select(model).filter_by(**filters).order_by(model.id))
            return list(result.scalars().all())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        db_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret-key",
        smtp_host=None,
        event_bus_enabled=False,
        outbox_max_attempts=3,
        log_format="text",
    )


@pytest_asyncio.fixture
async def db_manager(settings):
    """内存数据库，测试结束后销毁"""
    manager = DatabaseManager(settings)
    await manager.create_tables()
    yield manager
    await manager.drop_tables()
    await manager.close()


@pytest.fixture
def seed(db_manager) -> Seeder:
    return Seeder(db_manager)


@pytest.fixture
def principal_for():
    def _make(user: User) -> Principal:
        return Principal(id=user.id, role=user.role)
    return _make


@pytest.fixture
def fake_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def stock_service(db_manager, settings) -> StockService:
    return StockService(db_manager, settings)


@pytest.fixture
def notification_service(db_manager) -> NotificationService:
    return NotificationService(db_manager)


@pytest.fixture
def refund_service(db_manager, stock_service, notification_service, settings) -> RefundService:
    return RefundService(db_manager, stock_service, notification_service, settings)


@pytest.fixture
def order_service(db_manager, stock_service, notification_service, refund_service) -> OrderService:
    return OrderService(db_manager, stock_service, notification_service, refund_service)


@pytest.fixture
def product_service(db_manager) -> ProductService:
    return ProductService(db_manager)


@pytest.fixture
def checkout_service(db_manager, stock_service, notification_service) -> CheckoutService:
    return CheckoutService(db_manager, stock_service, notification_service)


@pytest.fixture
def dispatcher(db_manager, fake_sender, settings) -> OutboxDispatcher:
    return OutboxDispatcher(
        db_manager,
        handlers=[EmailNotificationHandler(fake_sender, settings)],
        settings=settings,
    )


@pytest.fixture
def auth_headers(settings):
    auth = AuthService(settings)

    def _make(user: User) -> Dict[str, str]:
        token = auth.create_access_token({"id": user.id, "role": user.role})
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest_asyncio.fixture
async def client(settings, db_manager, dispatcher):
    """挂在测试库上的 API 客户端"""
    from sf_core.app import create_app
    from sf_core.api.deps import get_auth, get_db, get_outbox_dispatcher

    app = create_app()
    auth = AuthService(settings)
    app.dependency_overrides[get_db] = lambda: db_manager
    app.dependency_overrides[get_auth] = lambda: auth
    app.dependency_overrides[get_outbox_dispatcher] = lambda: dispatcher

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

