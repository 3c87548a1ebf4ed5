"""
Storefront 错误处理系统
响应体沿用客户端约定：{"success": false, "error": "...", "code": "..."}
"""
from typing import Any, Dict, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """错误响应模型"""
    success: bool = Field(default=False)
    error: str
    code: str
    title: Optional[str] = None
    instance: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "Only processing orders can be cancelled",
                "code": "ORDER_NOT_CANCELLABLE",
                "title": "Invalid State",
            }
        }
    }


class StorefrontException(Exception):
    """Storefront 基础异常类"""

    def __init__(
        self,
        status: int,
        code: str,
        title: str,
        detail: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.code = code
        self.title = title
        self.detail = detail
        self.extra = kwargs
        super().__init__(detail or title)

    def to_body(self, instance: Optional[str] = None) -> ErrorBody:
        return ErrorBody(
            error=self.detail or self.title,
            code=self.code,
            title=self.title,
            instance=instance,
            details=self.extra or None,
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """转换为 JSON 响应"""
        instance = str(request.url.path) if request else None
        return JSONResponse(
            status_code=self.status,
            content=self.to_body(instance).model_dump(exclude_none=True, mode="json")
        )


class BadRequestError(StorefrontException):
    """400 错误请求"""
    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(status=400, code=code, title="Bad Request", detail=detail, **kwargs)


class ValidationError(BadRequestError):
    """400 参数校验失败"""
    def __init__(self, code: str, detail: str, **kwargs):
        StorefrontException.__init__(
            self, status=400, code=code, title="Validation Failed", detail=detail, **kwargs
        )


class InvalidStateError(BadRequestError):
    """400 当前状态不允许该操作"""
    def __init__(self, code: str, detail: str, **kwargs):
        StorefrontException.__init__(
            self, status=400, code=code, title="Invalid State", detail=detail, **kwargs
        )


class ConflictError(BadRequestError):
    """400 并发冲突或重复操作

    客户端只区分 400/401/403/404/500，冲突也归入 400。
    """
    def __init__(self, code: str, detail: str, **kwargs):
        StorefrontException.__init__(
            self, status=400, code=code, title="Conflict", detail=detail, **kwargs
        )


class StockAlreadyRestoredError(ConflictError):
    """订单库存已回补过"""
    def __init__(self, order_id: int, restored_at: Optional[str] = None):
        super().__init__(
            code="STOCK_ALREADY_RESTORED",
            detail=f"Stock for order {order_id} was already restored",
            order_id=order_id,
            stock_restored_at=restored_at,
        )


class UnauthorizedError(StorefrontException):
    """401 未授权"""
    def __init__(self, code: str = "UNAUTHORIZED", detail: str = "Authentication required"):
        super().__init__(status=401, code=code, title="Unauthorized", detail=detail)


class ForbiddenError(StorefrontException):
    """403 禁止访问"""
    def __init__(self, code: str = "FORBIDDEN", detail: str = "Access denied"):
        super().__init__(status=403, code=code, title="Forbidden", detail=detail)


class NotFoundError(StorefrontException):
    """404 未找到"""
    def __init__(self, code: str, resource: str):
        super().__init__(status=404, code=code, title="Not Found", detail=f"{resource} not found")


class InternalServerError(StorefrontException):
    """500 内部错误"""
    def __init__(self, code: str = "INTERNAL_ERROR", detail: str = "An internal error occurred"):
        super().__init__(status=500, code=code, title="Internal Server Error", detail=detail)

