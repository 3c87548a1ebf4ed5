"""
退款 API 路由
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends

from sf_core.models import UserRole
from sf_core.services import OutboxDispatcher, Principal, RefundService
from sf_core.utils.errors import StorefrontException, InternalServerError
from sf_core.utils.logger import get_logger
from .deps import get_current_principal, get_outbox_dispatcher, get_refund_service, require_roles
from .models import ApiResponse, RefundCreateRequest, RefundDecisionRequest

router = APIRouter()
logger = get_logger(__name__)

sales_manager_only = require_roles(UserRole.SALES_MANAGER.value)


@router.post("/request", response_model=ApiResponse)
async def create_refund_request(
    body: RefundCreateRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    refund_service: RefundService = Depends(get_refund_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """提交退款申请"""
    try:
        refund = await refund_service.request_refund(principal, body.order_id, body.reason)
        background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(refund, message="Refund request created successfully.")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to create refund request", order_id=body.order_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.patch("/approve/{refund_id}", response_model=ApiResponse)
async def approve_refund(
    refund_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[RefundDecisionRequest] = Body(default=None),
    principal: Principal = Depends(sales_manager_only),
    refund_service: RefundService = Depends(get_refund_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """批准退款"""
    try:
        result = await refund_service.approve(principal, refund_id, body.admin_note if body else None)
        background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(result, message="Refund approved successfully.")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to approve refund", refund_id=refund_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.patch("/reject/{refund_id}", response_model=ApiResponse)
async def reject_refund(
    refund_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[RefundDecisionRequest] = Body(default=None),
    principal: Principal = Depends(sales_manager_only),
    refund_service: RefundService = Depends(get_refund_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """拒绝退款"""
    try:
        result = await refund_service.reject(principal, refund_id, body.admin_note if body else None)
        background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(result, message="Refund rejected successfully.")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to reject refund", refund_id=refund_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.get("/order/{order_id}", response_model=ApiResponse)
async def get_refund_for_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    refund_service: RefundService = Depends(get_refund_service),
):
    """订单最近一次退款申请"""
    try:
        return ApiResponse.ok(await refund_service.get_for_order(principal, order_id))
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to get refund request", order_id=order_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))
