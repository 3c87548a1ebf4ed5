"""
API 依赖注入
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sf_core.database import DatabaseManager, get_db_manager
from sf_core.services import (
    AuthService,
    CheckoutService,
    NotificationService,
    OrderService,
    OutboxDispatcher,
    Principal,
    ProductService,
    RefundService,
    get_auth_service,
)
from sf_core.utils.errors import ForbiddenError, UnauthorizedError
from sf_core.utils.logger import user_id_var

security = HTTPBearer(auto_error=False)


def get_db() -> DatabaseManager:
    """依赖注入：数据库管理器（测试中覆盖）"""
    return get_db_manager()


def get_auth() -> AuthService:
    return get_auth_service()


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth),
) -> Principal:
    """从 Bearer 令牌解析当前用户"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError(code="MISSING_CREDENTIALS", detail="Access denied. No token provided.")

    principal = auth_service.principal_from_token(credentials.credentials)
    user_id_var.set(principal.id)
    return principal


def require_roles(*roles: str):
    """角色校验依赖"""
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise ForbiddenError(
                code="INSUFFICIENT_ROLE",
                detail=f"Requires one of roles: {', '.join(roles)}"
            )
        return principal

    return _check


def get_order_service(db: DatabaseManager = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_refund_service(db: DatabaseManager = Depends(get_db)) -> RefundService:
    return RefundService(db)


def get_notification_service(db: DatabaseManager = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_checkout_service(db: DatabaseManager = Depends(get_db)) -> CheckoutService:
    return CheckoutService(db)


def get_product_service(db: DatabaseManager = Depends(get_db)) -> ProductService:
    return ProductService(db)


def get_outbox_dispatcher(db: DatabaseManager = Depends(get_db)) -> OutboxDispatcher:
    return OutboxDispatcher(db)
