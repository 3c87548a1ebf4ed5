"""
Storefront 事件总线
基于 Redis Streams 实现持久化消息队列，订单事件由 outbox 投递到这里
"""
import json
import uuid
from typing import Dict, Any, Optional
from contextlib import asynccontextmanager

import redis.asyncio as redis

from sf_core.config import Settings, get_settings
from sf_core.utils.datetime_utils import utcnow
from sf_core.utils.logger import get_logger

logger = get_logger(__name__)

TOPIC_PREFIX = "sf."


class EventPayload:
    """事件载荷"""

    def __init__(
        self,
        event_id: Optional[str] = None,
        topic: str = "",
        payload: Optional[Dict[str, Any]] = None,
        timestamp: Optional[str] = None
    ):
        self.event_id = event_id or str(uuid.uuid4())
        self.topic = topic
        self.payload = payload or {}
        self.timestamp = timestamp or utcnow().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "ts": self.timestamp,
            "topic": self.topic,
            "payload": self.payload
        }


class EventBus:
    """事件总线实现"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.redis_client: Optional[redis.Redis] = None

    @asynccontextmanager
    async def _get_redis(self):
        """获取 Redis 连接"""
        if not self.redis_client:
            self.redis_client = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        try:
            yield self.redis_client
        except Exception:
            logger.error("Redis operation failed", exc_info=True)
            raise

    async def initialize(self) -> None:
        """初始化事件总线"""
        async with self._get_redis() as r:
            await r.ping()
        logger.info("Event bus initialized")

    async def shutdown(self) -> None:
        """关闭事件总线"""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None

        logger.info("Event bus shutdown complete")

    def _get_stream_name(self, topic: str) -> str:
        return f"sf:events:{topic}"

    @staticmethod
    def _check_topic(topic: str) -> None:
        if not topic.startswith(TOPIC_PREFIX):
            raise ValueError(f"Invalid topic format: {topic}")

    async def publish(
        self,
        topic: str,
        payload: Dict[str, Any],
        key: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> str:
        """
        发布事件到指定主题

        event_id 传 outbox 幂等键，重复投递时消费者可以据此去重。
        """
        self._check_topic(topic)

        event = EventPayload(event_id=event_id, topic=topic, payload=payload)
        event_data = {"data": json.dumps(event.to_dict(), default=str)}
        if key:
            event_data["key"] = key

        async with self._get_redis() as r:
            message_id = await r.xadd(self._get_stream_name(topic), event_data)

        logger.debug("Published event", topic=topic, event_id=event.event_id, message_id=message_id)
        return event.event_id


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """获取事件总线单例"""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
