"""
Inventory Service — 通知チャネル (Observer)

StockLedger が所有するプロセス内 Pub/Sub。
在庫変更がコミットされた後、同じ実行コンテキストで同期的に
購読者へ LowStockEvent を配信する。

- 購読者の失敗はログに残すだけで、コミット済みの在庫変更は巻き戻さない
- 後から購読した購読者へのリプレイはしない
"""

import inspect
import logging
from collections.abc import Awaitable, Callable

from .events import LowStockEvent

logger = logging.getLogger(__name__)

LowStockHandler = Callable[[LowStockEvent], Awaitable[None] | None]


class NotificationChannel:
    def __init__(self) -> None:
        self._handlers: list[LowStockHandler] = []

    def subscribe(self, handler: LowStockHandler) -> Callable[[], None]:
        """handler を登録し、登録解除用の関数を返す。"""
        self._handlers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: LowStockHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event: LowStockEvent) -> int:
        """
        現在の購読者全員に event を配信する (best-effort)。
        正常に処理できた購読者の数を返す。
        """
        delivered = 0
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(
                    "Low stock subscriber %r failed for product %s",
                    handler,
                    event.product_code,
                )
        return delivered
