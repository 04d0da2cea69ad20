"""
Inventory Service — low-stock 通知の購読者

NotificationChannel に登録するハンドラ:
  - log_low_stock: WARNING ログを出す
  - RedisLowStockPublisher: inventory_events チャネルへ Redis Pub/Sub で発行し、
    他サービス (アラート・レポート) に通知する
"""

import json
import logging

import redis.asyncio as aioredis

from .events import LowStockEvent

logger = logging.getLogger(__name__)

INVENTORY_EVENTS_CHANNEL = "inventory_events"


def log_low_stock(event: LowStockEvent) -> None:
    logger.warning(
        "Low stock: product %s (%s) has %d left",
        event.product_id,
        event.product_code,
        event.stock,
    )


class RedisLowStockPublisher:
    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str = INVENTORY_EVENTS_CHANNEL,
    ) -> None:
        self.redis = redis
        self.channel = channel

    async def __call__(self, event: LowStockEvent) -> None:
        await self.redis.publish(
            self.channel,
            json.dumps(
                {
                    "event_type": "LowStock",
                    "data": event.model_dump(),
                },
                default=str,
            ),
        )
