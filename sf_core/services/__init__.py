"""
Storefront 业务服务层
"""
from .base import BaseService, ServiceResult, RepositoryMixin
from .auth_service import AuthService, Principal, get_auth_service
from .order_state import OrderStateMachine, apply_transition
from .stock import StockService, ReconcileResult
from .notifications import NotificationService
from .outbox import OutboxDispatcher, EmailNotificationHandler, EventBusHandler, enqueue_event
from .refunds import RefundService
from .orders import OrderService
from .checkout import CheckoutService, CardDetails, CheckoutItem
from .products import ProductService

__all__ = [
    "BaseService",
    "ServiceResult",
    "RepositoryMixin",
    "AuthService",
    "Principal",
    "get_auth_service",
    "OrderStateMachine",
    "apply_transition",
    "StockService",
    "ReconcileResult",
    "NotificationService",
    "OutboxDispatcher",
    "EmailNotificationHandler",
    "EventBusHandler",
    "enqueue_event",
    "RefundService",
    "OrderService",
    "CheckoutService",
    "CardDetails",
    "CheckoutItem",
    "ProductService",
]
