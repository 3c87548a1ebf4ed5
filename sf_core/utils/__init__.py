"""
Storefront 工具模块
"""
from .logger import get_logger, setup_logging, LogContext
from .errors import (
    StorefrontException,
    BadRequestError,
    ValidationError,
    InvalidStateError,
    ConflictError,
    StockAlreadyRestoredError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    InternalServerError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "StorefrontException",
    "BadRequestError",
    "ValidationError",
    "InvalidStateError",
    "ConflictError",
    "StockAlreadyRestoredError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "InternalServerError",
]
