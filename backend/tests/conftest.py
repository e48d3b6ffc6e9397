"""
Pytest fixtures for stockledger backend tests.

Provides an in-memory database, per-test table wipe, stores and a product
factory that goes through the catalog service.
"""

import pytest

from stockledger import create_app
from stockledger.config import TestConfig
from stockledger.extensions import db
from stockledger.models import Store
from stockledger.services import products_service


ACTOR = "user-1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(config_object=TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def actor():
    return ACTOR


@pytest.fixture(scope='function')
def store_a(db_session):
    """Main store."""
    store = Store(name="Alpha Depot", location="Industrial Area", is_main_store=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    store = Store(name="Beta Outlet", location="Westlands")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Create a product through the service.

    Defaults to a grade A tire; keyword arguments override create_product's.
    Returns the serialized product.
    """
    def _make(name="Tire-X", **kwargs):
        params = {
            "base_price": 50,
            "product_type": "TIRE",
            "grade": "A",
            "actor_id": ACTOR,
        }
        params.update(kwargs)
        return products_service.create_product(name=name, **params)["product"]

    return _make
