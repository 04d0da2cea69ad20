"""
Inventory Service — 商品リポジトリ

商品を数値 id または商品コードで引く。
識別子は境界で一度だけ ProductRef (by_id / by_code) にパースする。
"""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InvalidRequest
from .schema import products

FIRST_PRODUCT_CODE = "P001"

_CODE_SUFFIX = re.compile(r"^P0*(\d*)")
_NUMERIC_CODE = re.compile(r"^P(\d+)$")


class RefKind(str, Enum):
    BY_ID = "by_id"
    BY_CODE = "by_code"


@dataclass(frozen=True)
class ProductRef:
    kind: RefKind
    value: int | str

    @classmethod
    def parse(cls, identifier) -> "ProductRef":
        """数字だけなら数値 id、それ以外は商品コードとして扱う。"""
        if identifier is None or isinstance(identifier, bool):
            raise InvalidRequest("product identifier is required")
        if isinstance(identifier, int):
            return cls(RefKind.BY_ID, identifier)
        text = str(identifier).strip()
        if not text:
            raise InvalidRequest("product identifier is required")
        if text.isdigit():
            return cls(RefKind.BY_ID, int(text))
        return cls(RefKind.BY_CODE, text)


@dataclass(frozen=True)
class Product:
    id: int
    product_code: str
    name: str
    price: Decimal
    stock: int
    category: str
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "Product":
        return cls(
            id=row.id,
            product_code=row.product_code,
            name=row.name,
            price=Decimal(str(row.price)),
            stock=int(row.stock),
            category=row.category,
            created_at=row.created_at,
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "price": float(self.price),
            "stock": self.stock,
            "category": self.category,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


async def get_product(session: AsyncSession, product_id: int) -> Product | None:
    result = await session.execute(select(products).where(products.c.id == product_id))
    row = result.fetchone()
    return Product.from_row(row) if row else None


async def resolve(session: AsyncSession, ref: ProductRef) -> Product | None:
    if ref.kind is RefKind.BY_ID:
        return await get_product(session, ref.value)
    result = await session.execute(
        select(products).where(products.c.product_code == ref.value).limit(1)
    )
    row = result.fetchone()
    return Product.from_row(row) if row else None


def increment_code(last_code: str | None) -> str:
    """
    P041 → P042。数値部分が無ければ 0 とみなす。
    999 を超えると桁数はそのまま増える (P1000)。
    """
    if not last_code:
        return FIRST_PRODUCT_CODE
    match = _CODE_SUFFIX.match(last_code)
    digits = match.group(1) if match else ""
    number = int(digits or "0") + 1
    return f"P{number:03d}"


async def next_product_code(session: AsyncSession) -> str:
    """
    P + 数字の形式のコードのうち最大の番号から次のコードを生成する。
    SKU-A のような任意のコードは採番に影響しない。
    """
    result = await session.execute(
        select(products.c.product_code).where(products.c.product_code.like("P%"))
    )
    highest = None
    highest_number = -1
    for code in result.scalars():
        match = _NUMERIC_CODE.match(code)
        if match and int(match.group(1)) > highest_number:
            highest, highest_number = code, int(match.group(1))
    return increment_code(highest)


async def insert_product(
    session: AsyncSession,
    product_code: str,
    name: str,
    price: Decimal,
    stock: int,
    category: str,
    now: datetime,
) -> int:
    result = await session.execute(
        insert(products).values(
            product_code=product_code,
            name=name,
            price=price,
            stock=stock,
            category=category,
            created_at=now,
        )
    )
    return result.inserted_primary_key[0]
