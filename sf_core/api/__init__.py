"""
Storefront API 路由模块
"""
from fastapi import APIRouter

from .orders import router as orders_router
from .refunds import router as refunds_router
from .notifications import router as notifications_router
from .checkout import router as checkout_router
from .products import router as products_router

api_router = APIRouter()

api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])
api_router.include_router(refunds_router, prefix="/refunds", tags=["Refunds"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(checkout_router, prefix="/payment", tags=["Payment"])
api_router.include_router(products_router, prefix="/products", tags=["Products"])

__all__ = ["api_router"]
