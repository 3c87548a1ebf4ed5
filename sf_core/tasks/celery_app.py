"""
Celery 应用配置
"""
from celery import Celery
from celery.schedules import crontab

from sf_core.config import get_settings
from sf_core.utils.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()

celery_app = Celery(
    "storefront",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["sf_core.tasks.core_tasks"],
)

celery_app.conf.update(
    task_serializer=settings.celery_task_serializer,
    result_serializer=settings.celery_result_serializer,
    accept_content=settings.celery_accept_content,

    timezone=settings.celery_timezone,
    enable_utc=True,

    task_default_queue=settings.celery_task_default_queue,
    task_routes={
        "sf.core.*": {"queue": "sf_core"},
    },

    result_expires=3600,
    task_ignore_result=False,

    worker_prefetch_multiplier=1,  # 公平调度
    task_acks_late=True,  # 任务完成后确认
    worker_max_tasks_per_child=1000,

    task_default_retry_delay=60,
    task_max_retries=5,

    # 任务超时配置（防止僵尸任务）
    task_soft_time_limit=300,
    task_time_limit=360,
)

# 定期任务配置（Beat Schedule）
celery_app.conf.beat_schedule = {
    # 投递 outbox 中积压的邮件和事件
    "dispatch-outbox": {
        "task": "sf.core.dispatch_outbox",
        "schedule": settings.outbox_dispatch_interval_seconds,
        "options": {"queue": "sf_core"}
    },
    # 每小时扫描一次库存差异（只报告，不修复）
    "scan-stock-discrepancies": {
        "task": "sf.core.scan_stock_discrepancies",
        "schedule": crontab(minute="15"),
        "options": {"queue": "sf_core"}
    },
}
