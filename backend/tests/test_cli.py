# Overview: Pytest coverage for the Flask CLI command groups.

from stockledger.models import Inventory, Store
from stockledger.services import stock_service

from conftest import ACTOR


def test_create_and_list_stores(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stores", "create", "--name", "Main Depot", "--location", "Nairobi", "--main"])
    assert result.exit_code == 0, result.output
    assert "PASS Created store" in result.output

    result = runner.invoke(args=["stores", "list"])
    assert result.exit_code == 0
    assert "* " in result.output
    assert "Main Depot" in result.output

    assert db_session.query(Store).filter_by(name="Main Depot").one().is_main_store is True


def test_list_stores_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["stores", "list"])
    assert "No stores found." in result.output


def test_create_store_requires_name(app, db_session):
    result = app.test_cli_runner().invoke(args=["stores", "create", "--name", " "])
    assert result.exit_code != 0
    assert "MISSING_REQUIRED_FIELDS" in result.output


def test_low_stock(app, db_session, store_a, make_product):
    make_product("Tire-X", store_assignments=[{"store_id": store_a.id, "initial_quantity": 2}])
    runner = app.test_cli_runner()

    result = runner.invoke(args=["inventory", "low-stock"])
    assert result.exit_code == 0
    assert "Tire-X (TIRE, grade A)" in result.output
    assert "Alpha Depot: 2 (reorder at -)" in result.output

    result = runner.invoke(args=["inventory", "low-stock", "--threshold", "1"])
    assert "No low-stock products." in result.output

    result = runner.invoke(args=["inventory", "low-stock", "--threshold", "-1"])
    assert result.exit_code != 0
    assert "INVALID_QUANTITY" in result.output


def test_restock(app, db_session, store_a, make_product):
    product = make_product("Tire-X", store_assignments=[{"store_id": store_a.id, "initial_quantity": 2}])
    runner = app.test_cli_runner()

    assert "Nothing needs restocking." in runner.invoke(args=["inventory", "restock"]).output

    stock_service.set_reorder_levels(
        product_id=product["id"], store_id=store_a.id,
        reorder_level=5, optimal_level=12, actor_id=ACTOR,
    )
    result = runner.invoke(args=["inventory", "restock", "--store-id", store_a.id])
    assert result.exit_code == 0
    assert "Alpha Depot: Tire-X 2/5 -> order 10" in result.output


def test_verify(app, db_session, store_a, make_product):
    make_product("Tire-X", store_assignments=[{"store_id": store_a.id, "initial_quantity": 5}])
    runner = app.test_cli_runner()

    result = runner.invoke(args=["inventory", "verify"])
    assert result.exit_code == 0, result.output
    assert "PASS 1 records match their history." in result.output

    db_session.query(Inventory).one().quantity = 7
    db_session.commit()

    result = runner.invoke(args=["inventory", "verify"])
    assert result.exit_code != 0
    assert "WARN Alpha Depot: Tire-X stored 7, ledger 5 (discrepancy 2)" in result.output

    result = runner.invoke(args=["inventory", "verify", "--inventory-id", "missing"])
    assert "INVENTORY_NOT_FOUND" in result.output
