"""
Inventory Service — 在庫台帳 (Stock Ledger)

商品の在庫数に増減を適用する。

読み取り→書き込みの間に競合が入らないよう、販売は条件付き UPDATE
(WHERE stock >= :qty) で行い、更新件数 0 を在庫不足として扱う。
変更がコミットされた後、在庫が閾値以下なら LowStockEvent を発行する。
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from . import products as product_repo
from .errors import InsufficientStock, InvalidRequest, NotFound
from .events import LowStockEvent
from .notifications import NotificationChannel
from .products import Product
from .schema import products

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 5


class Direction(str, Enum):
    ADD = "add"
    SELL = "sell"


# 呼び出し側の表記ゆれ → 正規化された方向
DIRECTION_SYNONYMS = {
    "add": Direction.ADD,
    "buy": Direction.ADD,
    "purchase": Direction.ADD,
    "sell": Direction.SELL,
    "sale": Direction.SELL,
}


def normalize_direction(value) -> Direction:
    if isinstance(value, Direction):
        return value
    if value is None or not str(value).strip():
        raise InvalidRequest("transaction type is required")
    direction = DIRECTION_SYNONYMS.get(str(value).strip().lower())
    if direction is None:
        raise InvalidRequest(f"Invalid transaction type: {value}")
    return direction


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequest("quantity must be a positive integer")
    return quantity


@dataclass(frozen=True)
class StockChange:
    """適用済みの在庫変更。product は更新後に再取得したスナップショット。"""
    product: Product
    quantity: int
    direction: Direction


class StockLedger:
    def __init__(
        self,
        channel: NotificationChannel | None = None,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> None:
        self.channel = channel or NotificationChannel()
        self.low_stock_threshold = low_stock_threshold

    async def stage(
        self,
        session: AsyncSession,
        product: Product,
        quantity: int,
        direction: Direction,
    ) -> StockChange:
        """
        在庫の増減をセッションに書き込む (コミットはしない)。

        呼び出し側が他の書き込みと同じトランザクションでコミットできるよう、
        通知の発行もここでは行わない。
        """
        validate_quantity(quantity)
        direction = normalize_direction(direction)

        if direction is Direction.ADD:
            stmt = (
                update(products)
                .where(products.c.id == product.id)
                .values(stock=products.c.stock + quantity)
            )
        else:
            stmt = (
                update(products)
                .where(products.c.id == product.id, products.c.stock >= quantity)
                .values(stock=products.c.stock - quantity)
            )
        result = await session.execute(stmt)

        if result.rowcount == 0:
            current = await product_repo.get_product(session, product.id)
            if current is None:
                raise NotFound("Product not found")
            raise InsufficientStock(
                f"Insufficient stock: requested={quantity}, available={current.stock}"
            )

        refreshed = await product_repo.get_product(session, product.id)
        return StockChange(product=refreshed, quantity=quantity, direction=direction)

    async def apply_delta(
        self,
        session: AsyncSession,
        product: Product,
        quantity: int,
        direction: Direction,
    ) -> Product:
        """在庫変更を適用してコミットし、必要なら low-stock 通知を出す。"""
        change = await self.stage(session, product, quantity, direction)
        await session.commit()
        logger.info(
            "Stock %s %d for %s: now %d",
            change.direction.value,
            quantity,
            change.product.product_code,
            change.product.stock,
        )
        await self.notify(change)
        return change.product

    def is_low(self, stock: int) -> bool:
        return stock <= self.low_stock_threshold

    async def notify(self, change: StockChange) -> bool:
        """コミット後に呼ぶ。イベントを発行したら True。"""
        if not self.is_low(change.product.stock):
            return False
        await self.channel.publish(
            LowStockEvent(
                product_id=change.product.id,
                product_code=change.product.product_code,
                stock=change.product.stock,
            )
        )
        return True
