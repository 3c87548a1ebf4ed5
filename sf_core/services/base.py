"""
基础服务类
"""
from typing import TypeVar, Generic, Optional, Dict, Any
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.database import DatabaseManager, get_db_manager
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import (
    StorefrontException,
    InternalServerError,
    NotFoundError,
)

T = TypeVar('T')


@dataclass
class ServiceResult(Generic[T]):
    """服务执行结果"""
    success: bool
    data: Optional[T] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ServiceResult[T]":
        """成功结果"""
        return cls(success=True, data=data, metadata=metadata or {})


class BaseService:
    """基础服务类"""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()
        self.logger = get_logger(self.__class__.__name__)

    async def execute_with_transaction(self, operation, *args, **kwargs) -> Any:
        """在事务中执行操作，任何异常都整体回滚"""
        try:
            async with self.db_manager.get_transaction() as session:
                return await operation(session, *args, **kwargs)
        except StorefrontException:
            raise
        except Exception as e:
            self.logger.error("Transaction operation failed", operation=getattr(operation, "__name__", None), exc_info=True)
            raise InternalServerError(
                code="TRANSACTION_FAILED",
                detail=f"Database transaction failed: {str(e)}"
            )

    async def execute_with_session(self, operation, *args, **kwargs) -> Any:
        """使用数据库会话执行只读操作"""
        try:
            async with self.db_manager.get_session() as session:
                return await operation(session, *args, **kwargs)
        except StorefrontException:
            raise
        except Exception as e:
            self.logger.error("Session operation failed", operation=getattr(operation, "__name__", None), exc_info=True)
            raise InternalServerError(
                code="SESSION_OPERATION_FAILED",
                detail=f"Database operation failed: {str(e)}"
            )


class RepositoryMixin:
    """仓储混入类 - 提供常用的数据库操作"""

    async def get_by_id(self, session: AsyncSession, model_class, record_id: int, for_update: bool = False):
        """根据ID获取记录，for_update 时加行锁"""
        stmt = select(model_class).where(model_class.id == record_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_404(
        self,
        session: AsyncSession,
        model_class,
        record_id: int,
        resource: str,
        for_update: bool = False,
    ):
        """获取记录，不存在时抛 NotFoundError"""
        instance = await self.get_by_id(session, model_class, record_id, for_update=for_update)
        if instance is None:
            raise NotFoundError(code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND", resource=resource)
        return instance

    async def create(self, session: AsyncSession, model_class, data: Dict[str, Any]) -> Any:
        """创建记录"""
        instance = model_class(**data)
        session.add(instance)
        await session.flush()  # 获取生成的ID
        return instance
