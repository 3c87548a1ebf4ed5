"""
基础任务类和装饰器
"""
import time
import asyncio
from functools import wraps

from celery import Task
from celery.exceptions import Retry

from sf_core.utils.logger import get_logger, LogContext

logger = get_logger(__name__)


class BaseTask(Task):
    """Storefront 基础任务类"""

    # 不能包含 Retry 异常，否则会无限递归
    autoretry_for = (Exception,)
    dont_autoretry_for = (Retry,)
    max_retries = 5
    default_retry_delay = 60
    retry_backoff = True
    retry_backoff_max = 300
    retry_jitter = True

    def __call__(self, *args, **kwargs):
        """任务调用包装器，添加日志上下文"""
        start_time = time.time()
        task_id = getattr(self.request, "id", None)

        with LogContext(trace_id=task_id):
            try:
                logger.info("Task starting", task=self.name)
                result = super().__call__(*args, **kwargs)
                logger.info(
                    "Task completed",
                    task=self.name,
                    latency_ms=int((time.time() - start_time) * 1000),
                    result="success",
                )
                return result
            except Exception as e:
                logger.error(
                    "Task failed",
                    task=self.name,
                    latency_ms=int((time.time() - start_time) * 1000),
                    result="error",
                    err=str(e),
                )
                raise


def task_with_context(bind=True, base=BaseTask, **task_kwargs):
    """任务装饰器，异步函数在新的事件循环中运行"""
    def decorator(func):
        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            def sync_wrapper(*args, **kwargs):
                return asyncio.run(func(*args, **kwargs))
            task_func = sync_wrapper
        else:
            task_func = func

        from .celery_app import celery_app
        task_name = task_kwargs.pop("name", f"sf.core.{func.__name__}")
        return celery_app.task(bind=bind, base=base, name=task_name, **task_kwargs)(task_func)

    return decorator
