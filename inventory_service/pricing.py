"""
Inventory Service — 価格計算

割引は加算方式 (複利ではない):
  - 数量 10 以上で 5%
  - 顧客のカテゴリが vip (大文字小文字を区別しない) ならさらに 5%
合計は 0.01 単位で四捨五入 (half away from zero)。
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import customers

BULK_QUANTITY = 10
BULK_DISCOUNT_PERCENT = Decimal("5")
VIP_DISCOUNT_PERCENT = Decimal("5")
VIP_CATEGORY = "vip"
CENT = Decimal("0.01")


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    category: str

    @property
    def is_vip(self) -> bool:
        return str(self.category).lower() == VIP_CATEGORY


async def find_customer(session: AsyncSession, reference) -> Customer | None:
    """顧客を id または名前で引く。見つからなければ None。"""
    if reference is None or not str(reference).strip():
        return None
    text = str(reference).strip()
    condition = customers.c.name == text
    if text.isdigit():
        condition = or_(customers.c.id == int(text), condition)
    result = await session.execute(
        select(customers).where(condition).order_by(customers.c.id).limit(1)
    )
    row = result.fetchone()
    if not row:
        return None
    return Customer(id=row.id, name=row.name, category=row.category)


def discount_percent(quantity: int, customer: Customer | None) -> Decimal:
    percent = Decimal("0")
    if quantity >= BULK_QUANTITY:
        percent += BULK_DISCOUNT_PERCENT
    if customer is not None and customer.is_vip:
        percent += VIP_DISCOUNT_PERCENT
    return percent


def compute_total(unit_price, quantity: int, customer: Customer | None = None) -> Decimal:
    price = unit_price if isinstance(unit_price, Decimal) else Decimal(str(unit_price))
    gross = price * quantity
    total = gross * (1 - discount_percent(quantity, customer) / 100)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)
