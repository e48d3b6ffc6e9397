# Overview: Pytest coverage for product search filters, pagination and low-stock reporting.

import pytest

from stockledger.services import products_service, stock_service
from stockledger.validation import ValidationError

from conftest import ACTOR


@pytest.fixture
def catalog(db_session, store_a, store_b, make_product):
    """
    Four products:
      Alpine Tyre   TIRE A  40  NEW/REGULAR  store_a:12
      Bush Runner   TIRE B  90  SECOND_HAND/FOUR_BY_FOUR  store_a:0 (record kept at zero)
      Cotton Bale   BALE A  150 store_b:3
      Denim Bale    BALE C  200 assigned nowhere
    """
    alpine = make_product(
        "Alpine Tyre", base_price=40, commodity="Passenger Tyres",
        tire_fields={"category": "NEW", "usage": "REGULAR"},
        store_assignments=[{"store_id": store_a.id, "initial_quantity": 12}],
    )
    bush = make_product(
        "Bush Runner", base_price=90, grade="B",
        tire_fields={"category": "SECOND_HAND", "usage": "FOUR_BY_FOUR"},
        store_assignments=[{"store_id": store_a.id, "initial_quantity": 2}],
    )
    stock_service.adjust_inventory(
        product_id=bush["id"], store_id=store_a.id, adjustment=-2,
        change_type="SALE", actor_id=ACTOR,
    )
    cotton = make_product(
        "Cotton Bale", base_price=150, product_type="BALE",
        store_assignments=[{"store_id": store_b.id, "initial_quantity": 3}],
    )
    denim = make_product("Denim Bale", base_price=200, product_type="BALE", grade="C")
    return {"alpine": alpine, "bush": bush, "cotton": cotton, "denim": denim}


def _names(result):
    return [p["name"] for p in result["products"]]


class TestSearchProducts:

    def test_no_filters_orders_by_name(self, catalog):
        result = products_service.search_products()

        assert _names(result) == ["Alpine Tyre", "Bush Runner", "Cotton Bale", "Denim Bale"]
        assert result["total"] == 4
        assert result["page"] == 1
        assert result["limit"] == 50
        assert result["total_pages"] == 1

    def test_name_is_case_insensitive_substring(self, catalog):
        assert _names(products_service.search_products({"name": "BALE"})) == ["Cotton Bale", "Denim Bale"]

    def test_commodity_filter(self, catalog):
        assert _names(products_service.search_products({"commodity": "tyres"})) == ["Alpine Tyre"]

    def test_type_grade_and_tire_filters(self, catalog):
        assert _names(products_service.search_products({"type": "TIRE", "grade": "B"})) == ["Bush Runner"]
        assert _names(products_service.search_products({"tire_usage": "REGULAR"})) == ["Alpine Tyre"]
        assert _names(products_service.search_products({"tire_category": "SECOND_HAND"})) == ["Bush Runner"]

    def test_price_range(self, catalog):
        result = products_service.search_products({"min_price": 50, "max_price": 150})
        assert _names(result) == ["Bush Runner", "Cotton Bale"]

    def test_store_filter(self, catalog, store_b):
        assert _names(products_service.search_products({"store_id": store_b.id})) == ["Cotton Bale"]

    def test_in_stock_true(self, catalog):
        assert _names(products_service.search_products({"in_stock": True})) == ["Alpine Tyre", "Cotton Bale"]

    def test_in_stock_false_includes_products_without_records(self, catalog):
        """Zero-quantity records and no records at all both count as out of stock."""
        assert _names(products_service.search_products({"in_stock": False})) == ["Bush Runner", "Denim Bale"]

    @pytest.mark.parametrize("value", ["false", 0, 1, "yes"])
    def test_in_stock_must_be_boolean(self, db_session, value):
        with pytest.raises(ValidationError) as exc:
            products_service.search_products({"in_stock": value})
        assert exc.value.message == "in_stock must be true or false"

    def test_pagination(self, catalog):
        page_2 = products_service.search_products(page=2, limit=3)

        assert _names(page_2) == ["Denim Bale"]
        assert page_2["total"] == 4
        assert page_2["total_pages"] == 2

    def test_limit_is_capped(self, catalog, app):
        result = products_service.search_products(limit=10_000)
        assert result["limit"] == app.config["SEARCH_MAX_LIMIT"]

    def test_empty_result(self, db_session):
        result = products_service.search_products({"name": "nothing"})
        assert result["products"] == []
        assert result["total"] == 0
        assert result["total_pages"] == 0

    def test_unknown_filter(self, db_session):
        with pytest.raises(ValidationError):
            products_service.search_products({"colour": "red"})

    @pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), ("2", 10)])
    def test_bad_paging(self, db_session, page, limit):
        with pytest.raises(ValidationError):
            products_service.search_products(page=page, limit=limit)

    def test_wildcards_are_literal(self, catalog):
        assert products_service.search_products({"name": "%"})["total"] == 0


class TestLowStock:

    def test_global_threshold(self, catalog):
        groups = products_service.get_low_stock_products(threshold=5)

        assert [g["product"]["name"] for g in groups] == ["Bush Runner", "Cotton Bale"]
        assert groups[0]["inventories"][0]["quantity"] == 0
        assert groups[0]["inventories"][0]["reorder_level"] is None

    def test_default_threshold_from_config(self, catalog):
        # 12 units is above the default threshold of 10
        names = [g["product"]["name"] for g in products_service.get_low_stock_products()]
        assert "Alpine Tyre" not in names

    def test_reorder_level_overrides_upwards(self, catalog, store_a):
        stock_service.set_reorder_levels(
            product_id=catalog["alpine"]["id"], store_id=store_a.id,
            reorder_level=15, optimal_level=30, actor_id=ACTOR,
        )

        groups = products_service.get_low_stock_products(threshold=5)

        names = [g["product"]["name"] for g in groups]
        assert names == ["Bush Runner", "Cotton Bale", "Alpine Tyre"]
        alpine = groups[-1]["inventories"][0]
        assert alpine["quantity"] == 12
        assert alpine["reorder_level"] == 15

    def test_grouping_by_product(self, db_session, store_a, store_b, make_product):
        make_product(
            "Tire-X",
            store_assignments=[
                {"store_id": store_a.id, "initial_quantity": 7},
                {"store_id": store_b.id, "initial_quantity": 2},
            ],
        )

        groups = products_service.get_low_stock_products(threshold=10)

        assert len(groups) == 1
        assert [inv["store_name"] for inv in groups[0]["inventories"]] == ["Beta Outlet", "Alpha Depot"]

    def test_nothing_low(self, db_session):
        assert products_service.get_low_stock_products(threshold=0) == []

    def test_threshold_still_applies_below_a_lower_reorder_level(self, db_session, store_a, make_product):
        """A reorder level under the threshold does not hide a row the threshold catches."""
        product = make_product("Tire-X", store_assignments=[{"store_id": store_a.id, "initial_quantity": 4}])
        stock_service.set_reorder_levels(
            product_id=product["id"], store_id=store_a.id,
            reorder_level=2, optimal_level=10, actor_id=ACTOR,
        )

        groups = products_service.get_low_stock_products(threshold=5)

        assert [g["product"]["name"] for g in groups] == ["Tire-X"]
        assert groups[0]["inventories"][0]["reorder_level"] == 2

    def test_null_reorder_level_uses_threshold_only(self, db_session, store_a, make_product):
        make_product("Tire-X", store_assignments=[{"store_id": store_a.id, "initial_quantity": 6}])

        assert products_service.get_low_stock_products(threshold=5) == []
        assert [g["product"]["name"] for g in products_service.get_low_stock_products(threshold=6)] == ["Tire-X"]
