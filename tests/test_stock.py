import pytest

from inventory_service import products as product_repo
from inventory_service.errors import InsufficientStock, InvalidRequest
from inventory_service.notifications import NotificationChannel
from inventory_service.stock import Direction, StockLedger, normalize_direction
from tests.conftest import add_product


@pytest.fixture
def received():
    return []


@pytest.fixture
def ledger(received):
    channel = NotificationChannel()
    channel.subscribe(received.append)
    return StockLedger(channel, low_stock_threshold=5)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("add", Direction.ADD),
        ("BUY", Direction.ADD),
        ("purchase", Direction.ADD),
        ("sell", Direction.SELL),
        ("Sale", Direction.SELL),
    ],
)
def test_normalize_direction(value, expected):
    assert normalize_direction(value) is expected


@pytest.mark.parametrize("value", ["refund", "", None])
def test_normalize_direction_rejects_unknown(value):
    with pytest.raises(InvalidRequest):
        normalize_direction(value)


async def test_add_increases_stock(session, ledger, received):
    product_id = await add_product(session, "P001", stock=10)
    product = await product_repo.get_product(session, product_id)

    updated = await ledger.apply_delta(session, product, 7, Direction.ADD)

    assert updated.stock == 17
    assert received == []


async def test_sell_decreases_stock(session, ledger):
    product_id = await add_product(session, "P001", stock=10)
    product = await product_repo.get_product(session, product_id)

    updated = await ledger.apply_delta(session, product, 4, Direction.SELL)

    assert updated.stock == 6


async def test_sell_more_than_available_leaves_stock_unchanged(session, ledger, received):
    product_id = await add_product(session, "P001", stock=3)
    product = await product_repo.get_product(session, product_id)

    with pytest.raises(InsufficientStock):
        await ledger.apply_delta(session, product, 4, Direction.SELL)
    await session.rollback()

    assert (await product_repo.get_product(session, product_id)).stock == 3
    assert received == []


async def test_sell_with_stale_snapshot_cannot_go_negative(session, ledger):
    product_id = await add_product(session, "P001", stock=5)
    stale = await product_repo.get_product(session, product_id)

    await ledger.apply_delta(session, stale, 4, Direction.SELL)
    # stale still reports stock=5, but the update is conditional on current stock
    with pytest.raises(InsufficientStock):
        await ledger.apply_delta(session, stale, 4, Direction.SELL)
    await session.rollback()

    assert (await product_repo.get_product(session, product_id)).stock == 1


@pytest.mark.parametrize("quantity", [0, -1, 2.5, True, None])
async def test_invalid_quantity(session, ledger, quantity):
    product_id = await add_product(session, "P001", stock=5)
    product = await product_repo.get_product(session, product_id)

    with pytest.raises(InvalidRequest):
        await ledger.apply_delta(session, product, quantity, Direction.ADD)


async def test_low_stock_fires_at_threshold(session, ledger, received):
    product_id = await add_product(session, "P001", stock=8)
    product = await product_repo.get_product(session, product_id)

    await ledger.apply_delta(session, product, 3, Direction.SELL)

    assert len(received) == 1
    assert received[0].product_id == product_id
    assert received[0].product_code == "P001"
    assert received[0].stock == 5


async def test_low_stock_does_not_fire_above_threshold(session, ledger, received):
    product_id = await add_product(session, "P001", stock=8)
    product = await product_repo.get_product(session, product_id)

    await ledger.apply_delta(session, product, 2, Direction.SELL)

    assert received == []


async def test_add_that_stays_low_still_fires(session, ledger, received):
    product_id = await add_product(session, "P001", stock=1)
    product = await product_repo.get_product(session, product_id)

    await ledger.apply_delta(session, product, 2, Direction.ADD)

    assert [e.stock for e in received] == [3]


async def test_subscriber_failure_keeps_committed_change(session_factory):
    channel = NotificationChannel()

    def broken(event):
        raise RuntimeError("pager offline")

    channel.subscribe(broken)
    ledger = StockLedger(channel, low_stock_threshold=5)

    async with session_factory() as session:
        product_id = await add_product(session, "P001", stock=6)
        product = await product_repo.get_product(session, product_id)
        updated = await ledger.apply_delta(session, product, 6, Direction.SELL)
    assert updated.stock == 0

    async with session_factory() as session:
        assert (await product_repo.get_product(session, product_id)).stock == 0
