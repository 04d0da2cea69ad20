"""
Inventory Service — イベント定義

在庫ドメインで発生するイベント。永続化はせず、
NotificationChannel と Redis Pub/Sub で配信されるだけ。
"""

from pydantic import BaseModel


class LowStockEvent(BaseModel):
    """在庫数が閾値以下になった"""
    product_id: int
    product_code: str
    stock: int
