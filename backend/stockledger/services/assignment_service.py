# backend/stockledger/services/assignment_service.py
"""
Store assignment management.

WHY: A product is only sellable at a store once a StoreProduct row links the
two. Assignment optionally opens stock for the pair; removal is only
allowed once that stock is back to zero.

RULES:
- At most one assignment per (product, store).
- A batch assignment is all-or-nothing: one unknown or already-linked store
  fails the whole batch and leaves no assignment behind.
- Unassigning deletes the zero-quantity Inventory row for the pair; the
  pair's InventoryHistory lines are kept.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, Store, StoreProduct
from ..validation import (
    AlreadyAssignedError,
    AssignmentNotFoundError,
    MissingFieldError,
    ProductHasInventoryError,
    validate_quantity,
)
from . import activity_service
from .stock_service import (
    find_inventory,
    require_product,
    require_store_row,
    stock_new_inventory,
)
from .unit_of_work import unit_of_work


def assign_to_store(
    *,
    product: Product,
    store: Store,
    actor_id: str,
    initial_quantity: int = 0,
    store_price_cents: int | None = None,
    reference_type: str,
    notes: str,
) -> dict:
    """
    Link one product to one store inside the caller's unit of work.

    Opens stock with a PURCHASE history line when initial_quantity > 0.
    Returns model objects; the caller serializes after commit.
    """
    existing = db.session.get(StoreProduct, (product.id, store.id))
    if existing is not None:
        raise AlreadyAssignedError(
            f"Product is already assigned to store {store.name}",
            entity_id=store.id,
        )

    store_product = StoreProduct(product_id=product.id, store_id=store.id)
    db.session.add(store_product)
    db.session.flush()

    inventory = None
    if initial_quantity and initial_quantity > 0:
        inventory, _ = stock_new_inventory(
            product=product,
            store=store,
            quantity=initial_quantity,
            actor_id=actor_id,
            reference_type=reference_type,
            notes=notes,
            store_price_cents=store_price_cents,
        )

    return {"store_id": store.id, "store_product": store_product, "inventory": inventory}


def serialize_assignment(result: dict) -> dict:
    inventory = result["inventory"]
    return {
        "store_id": result["store_id"],
        "store_product": result["store_product"].to_dict(),
        "inventory": inventory.to_dict() if inventory is not None else None,
    }


def assign_product_to_stores(
    *,
    product_id: str,
    store_ids: list[str],
    actor_id: str,
    initial_quantities: dict[str, int] | None = None,
) -> list[dict]:
    """
    Assign a product to several stores in one transaction.

    Args:
        product_id: Product to assign
        store_ids: Target stores (all must exist and be unassigned)
        actor_id: Authenticated caller, recorded on history and activity
        initial_quantities: Optional {store_id: quantity} opening stock

    Returns:
        One {"store_id", "store_product", "inventory"} dict per store

    Raises:
        MissingFieldError: no stores given
        ProductNotFoundError / StoreNotFoundError
        AlreadyAssignedError: any store is already linked
    """
    if not store_ids:
        raise MissingFieldError("At least one store must be provided")
    if not actor_id:
        raise MissingFieldError("Missing required fields: actor_id")

    initial_quantities = initial_quantities or {}
    for store_id, qty in initial_quantities.items():
        validate_quantity(qty, field=f"initial quantity for store {store_id}", allow_zero=True)

    results = []
    with unit_of_work():
        product = require_product(product_id)

        for store_id in store_ids:
            store = require_store_row(store_id)
            results.append(
                assign_to_store(
                    product=product,
                    store=store,
                    actor_id=actor_id,
                    initial_quantity=initial_quantities.get(store_id, 0),
                    reference_type="STORE_ASSIGNMENT",
                    notes=f"Initial stock for product assignment to {store.name}",
                )
            )

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.PRODUCT_ASSIGNED_TO_STORES,
            entity_type=activity_service.ENTITY_PRODUCT,
            entity_id=product_id,
            details={"store_count": len(store_ids), "stores": list(store_ids)},
        )

    current_app.logger.info(
        "Assigned product %s to %s stores (actor=%s)", product_id, len(store_ids), actor_id
    )
    return [serialize_assignment(r) for r in results]


def remove_product_from_store(*, product_id: str, store_id: str, actor_id: str) -> None:
    """
    Unassign a product from a store once its stock there is zero.

    Raises:
        ProductNotFoundError
        AssignmentNotFoundError: the pair is not linked
        ProductHasInventoryError: stock for the pair is above zero
    """
    if not actor_id:
        raise MissingFieldError("Missing required fields: actor_id")

    with unit_of_work() as session:
        require_product(product_id)

        assignment = session.get(StoreProduct, (product_id, store_id))
        if assignment is None:
            raise AssignmentNotFoundError(
                f"Product {product_id} is not assigned to store {store_id}",
                entity_id=store_id,
            )

        inventory = find_inventory(product_id, store_id, lock=True)
        if inventory is not None and inventory.quantity > 0:
            raise ProductHasInventoryError(
                f"Cannot remove product with {inventory.quantity} units in inventory",
                entity_id=product_id,
            )

        if inventory is not None:
            session.delete(inventory)
        session.delete(assignment)

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.PRODUCT_REMOVED_FROM_STORE,
            entity_type=activity_service.ENTITY_PRODUCT,
            entity_id=product_id,
            details={"store_id": store_id},
        )

    current_app.logger.info(
        "Removed product %s from store %s (actor=%s)", product_id, store_id, actor_id
    )
