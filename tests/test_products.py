import pytest

from inventory_service import products as product_repo
from inventory_service.errors import InvalidRequest
from inventory_service.products import ProductRef, RefKind, increment_code
from tests.conftest import add_product


class TestProductRef:
    def test_numeric_string_is_id(self):
        assert ProductRef.parse("12") == ProductRef(RefKind.BY_ID, 12)

    def test_int_is_id(self):
        assert ProductRef.parse(7) == ProductRef(RefKind.BY_ID, 7)

    def test_other_text_is_code(self):
        assert ProductRef.parse(" P010 ") == ProductRef(RefKind.BY_CODE, "P010")

    @pytest.mark.parametrize("identifier", [None, "", "   ", True])
    def test_empty_identifier_rejected(self, identifier):
        with pytest.raises(InvalidRequest):
            ProductRef.parse(identifier)


class TestIncrementCode:
    @pytest.mark.parametrize(
        "last,expected",
        [
            (None, "P001"),
            ("", "P001"),
            ("P041", "P042"),
            ("P009", "P010"),
            ("P999", "P1000"),
            ("P1000", "P1001"),
            ("P", "P001"),
            ("X12", "P001"),
        ],
    )
    def test_increment(self, last, expected):
        assert increment_code(last) == expected


class TestRepository:
    async def test_resolve_by_id_and_code(self, session):
        product_id = await add_product(session, "P010", stock=12)

        by_id = await product_repo.resolve(session, ProductRef.parse(str(product_id)))
        by_code = await product_repo.resolve(session, ProductRef.parse("P010"))

        assert by_id == by_code
        assert by_id.stock == 12

    async def test_resolve_missing(self, session):
        assert await product_repo.resolve(session, ProductRef.parse("P404")) is None
        assert await product_repo.resolve(session, ProductRef.parse("404")) is None

    async def test_next_code_when_empty(self, session):
        assert await product_repo.next_product_code(session) == "P001"

    async def test_next_code_follows_most_recent_product(self, session):
        await add_product(session, "P040", stock=1)
        await add_product(session, "P041", stock=1)
        assert await product_repo.next_product_code(session) == "P042"

    async def test_next_code_uses_highest_numeric_code(self, session):
        await add_product(session, "P010", stock=1)
        await add_product(session, "P009", stock=1)
        await add_product(session, "SKU-A", stock=1)
        assert await product_repo.next_product_code(session) == "P011"
