"""
Inventory Service — クエリハンドラ (CQRS Read 側)
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import products as product_repo
from .errors import InvalidRequest, NotFound
from .products import Product, ProductRef
from .schema import products, transactions

MAX_PAGE_SIZE = 100


def _transaction_dict(row) -> dict:
    return {
        "id": row.id,
        "transaction_id": row.transaction_id,
        "product_id": row.product_id,
        "quantity": row.quantity,
        "type": row.type,
        "customer_id": row.customer_id,
        "total_price": float(row.total_price),
        "date": row.date.isoformat() if row.date else None,
    }


async def list_products(
    session: AsyncSession,
    category: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> list[Product]:
    """カテゴリ (部分一致・大文字小文字無視) で絞り込み、id 順にページングする。"""
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidRequest(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    offset = (max(1, page) - 1) * limit

    stmt = select(products)
    if category:
        stmt = stmt.where(
            func.lower(products.c.category).contains(category.lower(), autoescape=True)
        )
    result = await session.execute(stmt.order_by(products.c.id).limit(limit).offset(offset))
    return [Product.from_row(row) for row in result.fetchall()]


async def inventory_value(session: AsyncSession) -> Decimal:
    """在庫総額 (price * stock の合計)"""
    result = await session.execute(select(func.sum(products.c.price * products.c.stock)))
    total = result.scalar()
    return Decimal(str(total or 0)).quantize(Decimal("0.01"))


async def low_stock_list(session: AsyncSession, threshold: int) -> list[Product]:
    result = await session.execute(
        select(products)
        .where(products.c.stock <= threshold)
        .order_by(products.c.stock.asc(), products.c.id)
    )
    return [Product.from_row(row) for row in result.fetchall()]


async def list_transactions(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(transactions).order_by(transactions.c.date.desc(), transactions.c.id.desc())
    )
    return [_transaction_dict(row) for row in result.fetchall()]


async def product_history(session: AsyncSession, identifier) -> list[dict]:
    """指定商品のトランザクション履歴 (新しい順)"""
    product = await product_repo.resolve(session, ProductRef.parse(identifier))
    if product is None:
        raise NotFound("Product not found")
    result = await session.execute(
        select(transactions)
        .where(transactions.c.product_id == product.id)
        .order_by(transactions.c.date.desc(), transactions.c.id.desc())
    )
    return [_transaction_dict(row) for row in result.fetchall()]


async def transaction_exists(session: AsyncSession, transaction_id: str) -> bool:
    result = await session.execute(
        select(transactions.c.id).where(transactions.c.transaction_id == transaction_id)
    )
    return result.first() is not None
