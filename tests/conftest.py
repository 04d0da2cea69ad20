from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from inventory_service import schema
from inventory_service.commands import InventoryManager
from inventory_service.config import Settings


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}"


@pytest.fixture
def settings(database_url, tmp_path):
    return Settings(
        database_url=database_url,
        transaction_log=str(tmp_path / "transactions.log"),
        create_schema=True,
    )


@pytest.fixture
async def engine(database_url):
    engine = create_async_engine(database_url)
    await schema.create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def manager(settings):
    return InventoryManager(settings)


@pytest.fixture
def low_stock_events(manager):
    received = []
    manager.channel.subscribe(received.append)
    return received


async def add_product(session, code, stock, price="50.00", name="Widget", category="tools"):
    result = await session.execute(
        insert(schema.products).values(
            product_code=code,
            name=name,
            price=Decimal(price),
            stock=stock,
            category=category,
            created_at=datetime.now(timezone.utc),
        )
    )
    await session.commit()
    return result.inserted_primary_key[0]


async def add_customer(session, name, category):
    result = await session.execute(
        insert(schema.customers).values(name=name, category=category)
    )
    await session.commit()
    return result.inserted_primary_key[0]
