"""
商品后台 API 路由
"""
from fastapi import APIRouter, Depends

from sf_core.models import UserRole
from sf_core.services import Principal, ProductService
from sf_core.utils.errors import StorefrontException, InternalServerError
from sf_core.utils.logger import get_logger
from .deps import get_product_service, require_roles
from .models import ApiResponse, ProductPriceApprovalRequest, ProductStockRequest, ProductVisibilityRequest

router = APIRouter()
logger = get_logger(__name__)

product_manager_only = require_roles(UserRole.PRODUCT_MANAGER.value)
sales_manager_only = require_roles(UserRole.SALES_MANAGER.value)
managers_only = require_roles(UserRole.PRODUCT_MANAGER.value, UserRole.SALES_MANAGER.value)


@router.put("/admin/stock/{product_id}", response_model=ApiResponse)
async def update_product_stock(
    product_id: int,
    body: ProductStockRequest,
    principal: Principal = Depends(product_manager_only),
    product_service: ProductService = Depends(get_product_service),
):
    """设置库存"""
    try:
        product = await product_service.set_stock(principal, product_id, body.stock)
        return ApiResponse.ok(product, message="Product stock updated successfully")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to update product stock", product_id=product_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.patch("/admin/{product_id}/visibility", response_model=ApiResponse)
async def update_product_visibility(
    product_id: int,
    body: ProductVisibilityRequest,
    principal: Principal = Depends(managers_only),
    product_service: ProductService = Depends(get_product_service),
):
    """上架 / 下架"""
    try:
        product = await product_service.set_visibility(principal, product_id, body.visible)
        return ApiResponse.ok(product, message="Product visibility updated successfully")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to update product visibility", product_id=product_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))


@router.patch("/{product_id}/approve", response_model=ApiResponse)
async def approve_product_price(
    product_id: int,
    body: ProductPriceApprovalRequest,
    principal: Principal = Depends(sales_manager_only),
    product_service: ProductService = Depends(get_product_service),
):
    """定价审批"""
    try:
        product = await product_service.approve_price(principal, product_id, body.price)
        return ApiResponse.ok(product, message="Product price approved and set to visible successfully")
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Failed to approve product price", product_id=product_id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))
