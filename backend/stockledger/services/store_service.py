from __future__ import annotations

from ..extensions import db
from ..models import Store
from ..validation import validate_name
from .unit_of_work import unit_of_work


def create_store(
    name: str,
    *,
    location: str | None = None,
    phone_number: str | None = None,
    email: str | None = None,
    is_main_store: bool = False,
) -> Store:
    name = validate_name(name)

    with unit_of_work() as session:
        store = Store(
            name=name,
            location=location,
            phone_number=phone_number,
            email=email,
            is_main_store=is_main_store,
        )
        session.add(store)
    return store


def get_store(store_id: str) -> Store | None:
    return db.session.query(Store).filter_by(id=store_id).first()


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.is_main_store.desc(), Store.name.asc()).all()
