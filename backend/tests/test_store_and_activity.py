# Overview: Pytest coverage for store helpers and activity log reads.

import pytest

from stockledger.services import activity_service, products_service, store_service
from stockledger.validation import MissingFieldError, ValidationError

from conftest import ACTOR


def test_create_and_get_store(db_session):
    store = store_service.create_store("  Harbour Shop ", location="Mombasa", email="harbour@example.com")

    fetched = store_service.get_store(store.id)
    assert fetched.name == "Harbour Shop"
    assert fetched.is_main_store is False
    assert store_service.get_store("missing") is None


def test_create_store_requires_name(db_session):
    with pytest.raises(MissingFieldError):
        store_service.create_store("")


def test_create_store_rejects_non_string_name(db_session):
    with pytest.raises(ValidationError) as exc:
        store_service.create_store(42)
    assert exc.value.message == "name must be a string"


def test_list_stores_main_first(db_session):
    store_service.create_store("Zed Corner")
    store_service.create_store("Yard", is_main_store=True)
    store_service.create_store("Avenue")

    assert [s.name for s in store_service.list_stores()] == ["Yard", "Avenue", "Zed Corner"]


def test_list_activity_newest_first(db_session, make_product):
    product = make_product("Tire-X")
    products_service.update_product(product_id=product["id"], updates={"grade": "C"}, actor_id="user-2")
    make_product("Tire-Y")

    entries = activity_service.list_activity(
        entity_type=activity_service.ENTITY_PRODUCT, entity_id=product["id"],
    )

    assert [e["action"] for e in entries] == [
        activity_service.PRODUCT_UPDATED,
        activity_service.PRODUCT_CREATED,
    ]
    assert entries[0]["user_id"] == "user-2"
    assert entries[1]["user_id"] == ACTOR
    assert entries[0]["details"] == {"updated_fields": ["grade"]}

    created = activity_service.list_activity(action=activity_service.PRODUCT_CREATED, limit=1)
    assert len(created) == 1


def test_activity_requires_actor(db_session):
    with pytest.raises(ValueError):
        activity_service.record_activity(
            actor_id="",
            action=activity_service.PRODUCT_CREATED,
            entity_type=activity_service.ENTITY_PRODUCT,
            entity_id="p-1",
        )
