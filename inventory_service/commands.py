"""
Inventory Service — コマンドハンドラ (CQRS Write 側)

商品登録・在庫更新・売買トランザクションの記録を処理する。

トランザクション記録のフロー:
  1. 入力検証 (transaction_id / 商品識別子 / 数量 / 種別)
  2. 商品の解決 (id または商品コード)
  3. 価格計算 (数量割引・VIP 割引)
  4. 在庫の条件付き更新 (在庫不足ならここで中断)
  5. トランザクション行の INSERT — 4 と同じ DB トランザクションでコミット
  6. 取引ログへの追記 (失敗しても処理は継続)
  7. 在庫が閾値以下なら LowStockEvent を発行
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import pricing, queries
from . import products as product_repo
from .audit import TransactionLog
from .config import Settings
from .errors import DuplicateTransaction, InvalidRequest, NotFound
from .notifications import NotificationChannel
from .products import Product, ProductRef
from .schema import products, transactions
from .stock import StockLedger, normalize_direction, validate_quantity

logger = logging.getLogger(__name__)

# 複数プロセスで同じコードを生成した場合の再試行回数
CODE_GENERATION_ATTEMPTS = 3


def _require_text(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidRequest(f"{field} is required")
    return str(value).strip()


def _parse_price(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidRequest("price is required")
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequest(f"Invalid price: {value}") from None
    if not price.is_finite() or price < 0:
        raise InvalidRequest("price must not be negative")
    return price


def _parse_stock(value) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequest("stock must be an integer")
    if value < 0:
        raise InvalidRequest("stock must not be negative")
    return value


class InventoryManager:
    def __init__(
        self,
        settings: Settings,
        channel: NotificationChannel | None = None,
        transaction_log: TransactionLog | None = None,
    ) -> None:
        self.settings = settings
        self.ledger = StockLedger(channel, settings.low_stock_threshold)
        self.transaction_log = transaction_log or TransactionLog(settings.transaction_log)
        self._code_lock = asyncio.Lock()

    @property
    def channel(self) -> NotificationChannel:
        return self.ledger.channel

    async def _resolve(self, session: AsyncSession, identifier) -> Product:
        product = await product_repo.resolve(session, ProductRef.parse(identifier))
        if product is None:
            raise NotFound("Product not found")
        return product

    # ── 商品 ─────────────────────────────────────

    async def register_product(
        self,
        session: AsyncSession,
        product_code: str | None,
        name: str,
        price,
        stock: int,
        category: str,
    ) -> dict:
        """
        商品登録コマンド

        product_code が無ければ P001, P002, ... を採番する。
        採番はプロセス内ロックで直列化し、別プロセスとの衝突は
        一意制約違反を検知して再採番する。
        """
        name = _require_text(name, "name")
        category = _require_text(category, "category")
        price = _parse_price(price)
        stock = _parse_stock(stock)
        now = datetime.now(timezone.utc)

        code = str(product_code).strip() if product_code else ""
        if code:
            try:
                product_id = await product_repo.insert_product(
                    session, code, name, price, stock, category, now
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise InvalidRequest(f"productCode '{code}' already exists") from None
        else:
            async with self._code_lock:
                for attempt in range(1, CODE_GENERATION_ATTEMPTS + 1):
                    code = await product_repo.next_product_code(session)
                    try:
                        product_id = await product_repo.insert_product(
                            session, code, name, price, stock, category, now
                        )
                        await session.commit()
                        break
                    except IntegrityError:
                        await session.rollback()
                        if attempt == CODE_GENERATION_ATTEMPTS:
                            raise InvalidRequest(
                                "Could not allocate a product code; supply productCode"
                            ) from None
                        logger.warning("Product code %s already taken, retrying", code)

        logger.info("Registered product %s (id=%s)", code, product_id)
        return {"product_id": product_id, "product_code": code}

    async def update_product(
        self,
        session: AsyncSession,
        identifier,
        name: str | None = None,
        price=None,
        category: str | None = None,
        stock: int | None = None,
    ) -> Product:
        """
        商品属性の直接更新。在庫を直接書き換えた場合は台帳の増減ではないため
        low-stock 通知は出さない。
        """
        fields = {}
        if name is not None:
            fields["name"] = _require_text(name, "name")
        if price is not None:
            fields["price"] = _parse_price(price)
        if category is not None:
            fields["category"] = _require_text(category, "category")
        if stock is not None:
            fields["stock"] = _parse_stock(stock)
        if not fields:
            raise InvalidRequest("No fields to update")

        product = await self._resolve(session, identifier)
        await session.execute(
            update(products).where(products.c.id == product.id).values(**fields)
        )
        await session.commit()
        logger.info("Updated product %s: %s", product.product_code, sorted(fields))
        return await product_repo.get_product(session, product.id)

    # ── 在庫 ─────────────────────────────────────

    async def adjust_stock(
        self,
        session: AsyncSession,
        identifier,
        quantity: int,
        transaction_type: str,
    ) -> Product:
        """在庫更新コマンド。更新後の商品を返す。"""
        validate_quantity(quantity)
        direction = normalize_direction(transaction_type)
        product = await self._resolve(session, identifier)
        return await self.ledger.apply_delta(session, product, quantity, direction)

    # ── トランザクション ───────────────────────────

    async def create_transaction(
        self,
        session: AsyncSession,
        transaction_id: str,
        product_identifier,
        quantity: int,
        transaction_type: str,
        customer_id: int | str | None = None,
    ) -> dict:
        """
        売買トランザクション作成コマンド

        transaction_id の重複チェックは呼び出し側 (API 層) で先に行う。
        それでも INSERT が一意制約に当たった場合は DuplicateTransaction とし、
        在庫変更は同じ DB トランザクションごとロールバックされる。
        """
        transaction_id = _require_text(transaction_id, "transactionId")
        ref = ProductRef.parse(product_identifier)
        validate_quantity(quantity)
        direction = normalize_direction(transaction_type)

        product = await product_repo.resolve(session, ref)
        if product is None:
            raise NotFound("Product not found")

        if customer_id is not None and not str(customer_id).strip():
            customer_id = None
        customer = None
        if customer_id is not None:
            customer = await pricing.find_customer(session, customer_id)
        total_price = pricing.compute_total(product.price, quantity, customer)

        change = await self.ledger.stage(session, product, quantity, direction)

        now = datetime.now(timezone.utc)
        try:
            await session.execute(
                insert(transactions).values(
                    transaction_id=transaction_id,
                    product_id=product.id,
                    quantity=quantity,
                    type=direction.value,
                    customer_id=str(customer_id) if customer_id is not None else None,
                    total_price=total_price,
                    date=now,
                )
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if await queries.transaction_exists(session, transaction_id):
                raise DuplicateTransaction(
                    f"transactionId '{transaction_id}' already used"
                ) from None
            logger.error(
                "Failed to record transaction %s; stock change rolled back",
                transaction_id,
            )
            raise
        except SQLAlchemyError:
            await session.rollback()
            logger.error(
                "Failed to record transaction %s; stock change rolled back",
                transaction_id,
            )
            raise

        logger.info(
            "Recorded transaction %s: %s %d x %s total=%s",
            transaction_id,
            direction.value,
            quantity,
            product.product_code,
            total_price,
        )
        await self.transaction_log.append(
            f"TID={transaction_id} PROD={product.id}/{product.product_code} "
            f"QTY={quantity} TYPE={direction.value} TOTAL={total_price}"
        )
        await self.ledger.notify(change)

        return {
            "transaction_id": transaction_id,
            "product_id": product.id,
            "product_code": product.product_code,
            "quantity": quantity,
            "type": direction.value,
            "total_price": total_price,
        }
