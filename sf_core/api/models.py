"""
API 请求/响应模型
客户端使用 camelCase，字段同时接受 snake_case
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    success: bool = Field(default=True, description="操作是否成功")
    message: Optional[str] = Field(default=None, description="提示信息")
    data: Optional[T] = Field(default=None, description="响应数据")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="元数据")

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> "ApiResponse":
        """创建成功响应"""
        return cls(success=True, data=data, message=message, metadata=metadata)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# 订单
class OrderStatusUpdateRequest(CamelModel):
    """后台修改订单状态"""
    status: str
    admin_note: Optional[str] = Field(default=None, alias="adminNote")


class OrderCancelRequest(CamelModel):
    """顾客取消订单"""
    cancellation_reason: Optional[str] = Field(default=None, alias="cancellationReason")


class OrderRefundRequest(CamelModel):
    """从订单发起退款"""
    reason: str = Field(min_length=1)


# 退款
class RefundCreateRequest(CamelModel):
    order_id: int = Field(alias="orderId")
    reason: str = Field(min_length=1)


class RefundDecisionRequest(CamelModel):
    admin_note: Optional[str] = Field(default=None, alias="adminNote")


# 通知
class MarkAsReadRequest(CamelModel):
    """notification_ids 为空时全部标记已读"""
    notification_ids: Optional[List[int]] = Field(default=None, alias="notificationIds")


# 结账
class CheckoutItemModel(CamelModel):
    product_id: int = Field(alias="productId")
    quantity: int


class CheckoutRequest(CamelModel):
    card_number: str = Field(alias="cardNumber")
    card_name: str = Field(alias="cardName")
    expiration_month: int = Field(alias="expirationMonth")
    expiration_year: int = Field(alias="expirationYear")
    cvv: str
    items: List[CheckoutItemModel]
    shipping_address: Optional[str] = Field(default=None, alias="shippingAddress")


# 商品后台
class ProductStockRequest(CamelModel):
    stock: int = Field(ge=0)


class ProductVisibilityRequest(CamelModel):
    visible: bool


class ProductPriceApprovalRequest(CamelModel):
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
