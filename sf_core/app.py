"""
Storefront FastAPI 主应用
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder

from sf_core.config import get_settings
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.logger import setup_logging, get_logger
from sf_core.utils.errors import StorefrontException
from sf_core.database import get_db_manager
from sf_core.event_bus import get_event_bus
from sf_core.middleware.logging import LoggingMiddleware
from sf_core.api import api_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings = get_settings()
    logger.info("Starting Storefront application", version=settings.api_version)

    db_manager = get_db_manager()
    if not await db_manager.check_connection():
        raise RuntimeError("Database connection failed")

    event_bus = get_event_bus() if settings.event_bus_enabled else None
    if event_bus:
        await event_bus.initialize()

    logger.info("Storefront application started successfully")

    yield

    logger.info("Shutting down Storefront application")
    try:
        if event_bus:
            await event_bus.shutdown()
        await db_manager.close()
        logger.info("Storefront application shutdown complete")
    except Exception:
        logger.error("Error during application shutdown", exc_info=True)


def create_app() -> FastAPI:
    """创建 FastAPI 应用"""
    settings = get_settings()

    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Storefront order, refund and stock API",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        openapi_url="/openapi.json" if settings.api_debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.exception_handler(StorefrontException)
    async def storefront_exception_handler(request: Request, exc: StorefrontException):
        """处理 Storefront 自定义异常"""
        if exc.status >= 500:
            logger.error("Request failed", path=request.url.path, code=exc.code, detail=exc.detail)
        return exc.to_response(request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """请求体校验失败统一返回 400"""
        logger.warning("Request validation failed", path=request.url.path, errors=str(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "details": {"validation_errors": jsonable_encoder(exc.errors())},
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理 FastAPI HTTP 异常"""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": str(exc.detail),
                "code": f"HTTP_{exc.status_code}",
            }
        )

    @app.exception_handler(Exception)
    async def internal_server_error_handler(request: Request, exc: Exception):
        """处理未捕获的服务器错误"""
        logger.error("Unhandled server error", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "An internal server error occurred",
                "code": "INTERNAL_SERVER_ERROR",
            }
        )

    @app.get("/healthz")
    async def health_check():
        """健康检查端点"""
        return {"status": "healthy", "timestamp": utcnow().isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sf_core.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # 使用自定义日志中间件
    )
