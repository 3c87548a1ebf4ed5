"""
核心系统任务
"""
from typing import Any, Dict

from sf_core.database import DatabaseManager
from sf_core.services import OutboxDispatcher, StockService
from sf_core.utils.logger import get_logger
from .base import task_with_context

logger = get_logger(__name__)


@task_with_context(bind=False, name="sf.core.dispatch_outbox")
async def dispatch_outbox(limit: int = 0) -> Dict[str, int]:
    """投递 outbox 中的 pending 事件"""
    # 每次运行都是新的事件循环，不能复用进程级引擎
    db_manager = DatabaseManager()
    try:
        stats = await OutboxDispatcher(db_manager).dispatch_pending(limit or None)
        logger.info("Outbox dispatch finished", **stats)
        return stats
    finally:
        await db_manager.close()


@task_with_context(bind=False, name="sf.core.scan_stock_discrepancies")
async def scan_stock_discrepancies(limit: int = 100) -> Dict[str, Any]:
    """扫描需要回补但没有回补标记的订单，只记录日志"""
    db_manager = DatabaseManager()
    try:
        discrepancies = await StockService(db_manager).find_discrepancies(limit=limit)
        if discrepancies:
            logger.warning(
                "Orders with unrestored stock found",
                count=len(discrepancies),
                order_ids=[d["order_id"] for d in discrepancies],
            )
        return {"count": len(discrepancies), "order_ids": [d["order_id"] for d in discrepancies]}
    finally:
        await db_manager.close()
