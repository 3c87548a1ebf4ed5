"""
订单 API 路由
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query

from sf_core.models import UserRole
from sf_core.services import OrderService, OutboxDispatcher, Principal, RefundService
from sf_core.utils.errors import StorefrontException, InternalServerError
from sf_core.utils.logger import get_logger
from .deps import (
    get_current_principal,
    get_order_service,
    get_outbox_dispatcher,
    get_refund_service,
    require_roles,
)
from .models import ApiResponse, OrderCancelRequest, OrderRefundRequest, OrderStatusUpdateRequest

router = APIRouter()
logger = get_logger(__name__)

managers_only = require_roles(UserRole.PRODUCT_MANAGER.value, UserRole.SALES_MANAGER.value)


@router.get("", response_model=ApiResponse)
async def list_orders(
    status: Optional[str] = Query(None, description="按状态过滤"),
    principal: Principal = Depends(managers_only),
    order_service: OrderService = Depends(get_order_service),
):
    """后台订单列表"""
    try:
        orders = await order_service.list_orders(principal, status=status)
        return ApiResponse.ok(orders, metadata={"count": len(orders)})
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to list orders", exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.get("/user/{user_id}", response_model=ApiResponse)
async def list_user_orders(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    order_service: OrderService = Depends(get_order_service),
):
    """某个用户的订单"""
    try:
        orders = await order_service.list_user_orders(principal, user_id)
        return ApiResponse.ok(orders, metadata={"count": len(orders)})
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to list user orders", user_id=user_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.get("/{order_id}", response_model=ApiResponse)
async def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    order_service: OrderService = Depends(get_order_service),
):
    """订单详情"""
    try:
        return ApiResponse.ok(await order_service.get_order(principal, order_id))
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to get order", order_id=order_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.patch("/{order_id}/status", response_model=ApiResponse)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdateRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(managers_only),
    order_service: OrderService = Depends(get_order_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """后台修改订单状态"""
    try:
        result = await order_service.update_status(principal, order_id, body.status, body.admin_note)
        if result.metadata.get("changed"):
            background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(
            result.data,
            message="Order status updated successfully",
            metadata=result.metadata,
        )
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to update order status", order_id=order_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.patch("/{order_id}/cancel", response_model=ApiResponse)
async def cancel_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[OrderCancelRequest] = Body(default=None),
    principal: Principal = Depends(get_current_principal),
    order_service: OrderService = Depends(get_order_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """顾客取消订单"""
    try:
        reason = body.cancellation_reason if body else None
        result = await order_service.cancel_order(principal, order_id, reason)
        background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(result.data, message="Order cancelled successfully")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to cancel order", order_id=order_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.post("/{order_id}/refund-request", response_model=ApiResponse)
async def request_refund(
    order_id: int,
    body: OrderRefundRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    refund_service: RefundService = Depends(get_refund_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """从订单页发起退款申请"""
    try:
        refund = await refund_service.request_refund(principal, order_id, body.reason)
        background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(refund, message="Refund request submitted successfully")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to request refund", order_id=order_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))
