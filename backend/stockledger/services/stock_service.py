# Overview: Service-layer stocking operations; every quantity change writes history and an activity entry.

# backend/stockledger/services/stock_service.py
"""
Inventory Invariants (authoritative)

Inventory model:
- One Inventory row per (product_id, store_id); quantity is a stored counter.
- quantity is never negative.
- Every change to quantity appends an InventoryHistory line in the same
  transaction, with previous_quantity + quantity_change == new_quantity.
- Stock only exists for assigned pairs: an Inventory row requires a
  StoreProduct row for the same (product_id, store_id).

Audit:
- Each mutating operation appends exactly one ActivityLog entry in the same
  transaction.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Inventory, InventoryHistory, Product, Store, StoreProduct
from ..models.inventory import (
    CHANGE_ADJUSTMENT,
    CHANGE_DAMAGE,
    CHANGE_PURCHASE,
    CHANGE_RETURN,
    CHANGE_SALE,
    CHANGE_TRANSFER_IN,
    CHANGE_TRANSFER_OUT,
    CHANGE_TYPES,
)
from ..validation import (
    AssignmentNotFoundError,
    InsufficientInventoryError,
    InvalidLevelsError,
    InvalidQuantityError,
    InventoryNotFoundError,
    ProductNotFoundError,
    StoreNotFoundError,
    ValidationError,
    validate_choice,
    cents_to_price,
    price_to_cents,
    require_fields,
    validate_quantity,
)
from . import activity_service
from .history_service import record_inventory_change
from .unit_of_work import lock_for_update, unit_of_work

REFERENCE_TYPES = {
    CHANGE_PURCHASE: "PURCHASE_ORDER",
    CHANGE_SALE: "SALE",
    CHANGE_TRANSFER_OUT: "TRANSFER",
    CHANGE_TRANSFER_IN: "TRANSFER",
    CHANGE_ADJUSTMENT: "ADJUSTMENT",
    CHANGE_RETURN: "RETURN",
    CHANGE_DAMAGE: "DAMAGE_REPORT",
}


def _default_notes(change_type: str, adjustment: int) -> str:
    direction = "increase" if adjustment > 0 else "decrease"
    units = abs(adjustment)
    if change_type == CHANGE_PURCHASE:
        return f"Purchase of {units} units"
    if change_type == CHANGE_SALE:
        return f"Sale of {units} units"
    if change_type == CHANGE_TRANSFER_OUT:
        return f"Transferred out {units} units"
    if change_type == CHANGE_TRANSFER_IN:
        return f"Transferred in {units} units"
    if change_type == CHANGE_RETURN:
        return f"Customer return of {units} units"
    if change_type == CHANGE_DAMAGE:
        verb = "write-off" if direction == "decrease" else "reversal"
        return f"Damaged goods {verb} of {units} units"
    return f"Manual {direction} of {units} units"


# ---------------------------------------------------------------------------
# Lookups shared with products_service / assignment_service
# ---------------------------------------------------------------------------

def require_product(product_id: str, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError("Product does not exist", entity_id=product_id)
    return product


def require_store_row(store_id: str) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None:
        raise StoreNotFoundError(f"Store {store_id} does not exist", entity_id=store_id)
    return store


def require_assignment(product_id: str, store_id: str) -> StoreProduct:
    assignment = db.session.get(StoreProduct, (product_id, store_id))
    if assignment is None:
        raise AssignmentNotFoundError(
            f"Product {product_id} is not assigned to store {store_id}",
            entity_id=store_id,
        )
    return assignment


def find_inventory(product_id: str, store_id: str, *, lock: bool = False) -> Inventory | None:
    query = db.session.query(Inventory).filter_by(product_id=product_id, store_id=store_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def stock_new_inventory(
    *,
    product: Product,
    store: Store,
    quantity: int,
    actor_id: str,
    reference_type: str,
    notes: str,
    reference_id: str | None = None,
    store_price_cents: int | None = None,
) -> tuple[Inventory, InventoryHistory]:
    """
    Create the first Inventory row for a freshly assigned pair and its
    opening PURCHASE history line (previous_quantity=0).

    No commit, no activity entry: the calling workflow owns both.
    """
    inventory = Inventory(
        product_id=product.id,
        store_id=store.id,
        quantity=quantity,
        store_price_cents=store_price_cents,
    )
    db.session.add(inventory)
    db.session.flush()

    entry = record_inventory_change(
        inventory,
        change_type=CHANGE_PURCHASE,
        previous_quantity=0,
        actor_id=actor_id,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    return inventory, entry


def _increment_inventory(
    *,
    product: Product,
    store: Store,
    quantity: int,
    actor_id: str,
    reference_type: str,
    reference_id: str | None,
    notes: str,
    store_price_cents: int | None,
) -> tuple[Inventory, dict]:
    inventory = find_inventory(product.id, store.id, lock=True)
    if inventory is None:
        inventory, entry = stock_new_inventory(
            product=product,
            store=store,
            quantity=quantity,
            actor_id=actor_id,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            store_price_cents=store_price_cents,
        )
        return inventory, entry.to_dict()

    previous = inventory.quantity
    inventory.quantity = previous + quantity
    if store_price_cents is not None:
        inventory.store_price_cents = store_price_cents
    entry = record_inventory_change(
        inventory,
        change_type=CHANGE_PURCHASE,
        previous_quantity=previous,
        actor_id=actor_id,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    return inventory, entry.to_dict()


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def allocate_inventory(
    *,
    product_id: str,
    store_id: str,
    quantity: int,
    actor_id: str,
    store_price: float | None = None,
) -> dict:
    """
    Add stock for an assigned (product, store) pair.

    Creates the Inventory row on first allocation, otherwise increments it.

    Raises:
        InvalidQuantityError: quantity is not a positive integer
        ProductNotFoundError / StoreNotFoundError
        AssignmentNotFoundError: the product is not sellable at the store
    """
    validate_quantity(quantity)
    store_price_cents = None
    if store_price is not None:
        store_price_cents = price_to_cents(store_price, field="store_price")

    with unit_of_work():
        product = require_product(product_id)
        store = require_store_row(store_id)
        require_assignment(product_id, store_id)

        inventory, history = _increment_inventory(
            product=product,
            store=store,
            quantity=quantity,
            actor_id=actor_id,
            reference_type="INITIAL_ALLOCATION",
            reference_id=None,
            notes=f"Initial allocation to store {store.name}",
            store_price_cents=store_price_cents,
        )

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.INVENTORY_ALLOCATED,
            entity_type=activity_service.ENTITY_INVENTORY,
            entity_id=inventory.id,
            details={"product_id": product_id, "store_id": store_id, "quantity": quantity},
        )

    current_app.logger.info(
        "Allocated %s units of product %s to store %s (actor=%s)",
        quantity, product_id, store_id, actor_id,
    )
    return {"inventory": inventory.to_dict(), "history": history}


def adjust_inventory(
    *,
    product_id: str,
    store_id: str,
    adjustment: int,
    change_type: str,
    actor_id: str,
    notes: str | None = None,
    reference_id: str | None = None,
) -> dict:
    """
    Apply a signed quantity change (damage, correction, return, ...).

    Raises:
        InvalidQuantityError: adjustment is zero or not an integer
        InventoryNotFoundError: no stock record for the pair
        InsufficientInventoryError: the result would be negative
    """
    if isinstance(adjustment, bool) or not isinstance(adjustment, int):
        raise InvalidQuantityError("adjustment must be an integer")
    if adjustment == 0:
        raise InvalidQuantityError("Adjustment quantity cannot be zero")
    validate_choice(change_type, CHANGE_TYPES, field="change_type")

    with unit_of_work():
        inventory = find_inventory(product_id, store_id, lock=True)
        if inventory is None:
            raise InventoryNotFoundError(
                f"No inventory for product {product_id} in store {store_id}",
                entity_id=product_id,
            )

        previous = inventory.quantity
        new_quantity = previous + adjustment
        if new_quantity < 0:
            raise InsufficientInventoryError(
                f"Cannot adjust by {adjustment}. Current: {previous}, result would be: {new_quantity}",
                entity_id=inventory.id,
            )

        inventory.quantity = new_quantity
        entry = record_inventory_change(
            inventory,
            change_type=change_type,
            previous_quantity=previous,
            actor_id=actor_id,
            reference_id=reference_id,
            reference_type=REFERENCE_TYPES[change_type] if reference_id else None,
            notes=notes or _default_notes(change_type, adjustment),
        )

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.INVENTORY_ADJUSTED,
            entity_type=activity_service.ENTITY_INVENTORY,
            entity_id=inventory.id,
            details={
                "product_id": product_id,
                "store_id": store_id,
                "change_type": change_type,
                "quantity_change": adjustment,
            },
        )

    current_app.logger.info(
        "Adjusted product %s at store %s by %s (%s, actor=%s)",
        product_id, store_id, adjustment, change_type, actor_id,
    )
    return {"inventory": inventory.to_dict(), "history": entry.to_dict()}


def reserve_inventory(
    *,
    product_id: str,
    store_id: str,
    quantity: int,
    reservation_id: str,
    actor_id: str,
) -> dict:
    """
    Confirm a store can cover a pending order line, under a row lock.

    Nothing is held and the quantity does not change, so no history line is
    written; the check is recorded as an INVENTORY_RESERVED activity entry.

    Raises:
        InventoryNotFoundError: no stock record for the pair
        InsufficientInventoryError: fewer units than requested
    """
    require_fields({"reservation_id": reservation_id, "actor_id": actor_id})
    validate_quantity(quantity)

    with unit_of_work():
        inventory = find_inventory(product_id, store_id, lock=True)
        if inventory is None:
            raise InventoryNotFoundError(
                f"No inventory for product {product_id} in store {store_id}",
                entity_id=product_id,
            )
        if inventory.quantity < quantity:
            raise InsufficientInventoryError(
                f"Insufficient inventory. Available: {inventory.quantity}, requested: {quantity}",
                entity_id=inventory.id,
            )

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.INVENTORY_RESERVED,
            entity_type=activity_service.ENTITY_INVENTORY,
            entity_id=inventory.id,
            details={
                "product_id": product_id,
                "store_id": store_id,
                "quantity": quantity,
                "reservation_id": reservation_id,
            },
        )

    current_app.logger.info(
        "Reserved %s units of product %s at store %s for %s (actor=%s)",
        quantity, product_id, store_id, reservation_id, actor_id,
    )
    return {
        "inventory_id": inventory.id,
        "reservation_id": reservation_id,
        "quantity": quantity,
        "available": inventory.quantity,
    }


def receive_shipment(*, items: list[dict], shipment_id: str, actor_id: str) -> list[dict]:
    """
    Receive a multi-line shipment atomically.

    Each item: {"product_id", "store_id", "quantity", "store_price"?}.
    Any invalid line aborts the whole shipment.
    """
    if not items:
        raise ValidationError("No items in shipment")
    if not shipment_id:
        raise ValidationError("shipment_id is required")

    lines = []
    for item in items:
        require_fields({"product_id": item.get("product_id"), "store_id": item.get("store_id")})
        validate_quantity(item.get("quantity"), field=f"quantity for product {item['product_id']}")
        price = item.get("store_price")
        lines.append({
            "product_id": item["product_id"],
            "store_id": item["store_id"],
            "quantity": item["quantity"],
            "store_price_cents": price_to_cents(price, field="store_price") if price is not None else None,
        })

    results = []
    with unit_of_work():
        for item in lines:
            product = require_product(item["product_id"])
            store = require_store_row(item["store_id"])
            require_assignment(product.id, store.id)

            inventory, history = _increment_inventory(
                product=product,
                store=store,
                quantity=item["quantity"],
                actor_id=actor_id,
                reference_type="SHIPMENT",
                reference_id=shipment_id,
                notes=f"Received shipment {shipment_id}",
                store_price_cents=item["store_price_cents"],
            )
            results.append({"inventory": inventory, "history": history})

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.SHIPMENT_RECEIVED,
            entity_type=activity_service.ENTITY_INVENTORY,
            entity_id=shipment_id,
            details={"shipment_id": shipment_id, "line_count": len(items)},
        )

    current_app.logger.info(
        "Received shipment %s with %s lines (actor=%s)", shipment_id, len(items), actor_id
    )
    return [{"inventory": r["inventory"].to_dict(), "history": r["history"]} for r in results]


def set_reorder_levels(
    *,
    product_id: str,
    store_id: str,
    reorder_level: int,
    optimal_level: int,
    actor_id: str,
) -> dict:
    if (
        isinstance(reorder_level, bool) or not isinstance(reorder_level, int)
        or isinstance(optimal_level, bool) or not isinstance(optimal_level, int)
    ):
        raise InvalidLevelsError("Reorder and optimal levels must be integers")
    if reorder_level < 0 or optimal_level < 0:
        raise InvalidLevelsError("Reorder and optimal levels cannot be negative")
    if optimal_level <= reorder_level:
        raise InvalidLevelsError("Optimal level must be greater than reorder level")

    with unit_of_work():
        inventory = find_inventory(product_id, store_id, lock=True)
        if inventory is None:
            raise InventoryNotFoundError(
                f"No inventory for product {product_id} in store {store_id}",
                entity_id=product_id,
            )
        inventory.reorder_level = reorder_level
        inventory.optimal_level = optimal_level

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.INVENTORY_LEVELS_UPDATED,
            entity_type=activity_service.ENTITY_INVENTORY,
            entity_id=inventory.id,
            details={"reorder_level": reorder_level, "optimal_level": optimal_level},
        )

    return inventory.to_dict()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_product_inventory_across_stores(product_id: str) -> list[dict]:
    require_product(product_id)
    rows = (
        db.session.query(Inventory)
        .join(Store, Inventory.store_id == Store.id)
        .options(joinedload(Inventory.store))
        .filter(Inventory.product_id == product_id)
        .order_by(Store.is_main_store.desc(), Store.name.asc())
        .all()
    )
    return [
        {
            "store_id": inv.store_id,
            "store_name": inv.store.name,
            "quantity": inv.quantity,
            "store_price": cents_to_price(inv.store_price_cents),
            "reorder_level": inv.reorder_level,
            "optimal_level": inv.optimal_level,
        }
        for inv in rows
    ]


def check_inventory_availability(
    product_id: str,
    quantity: int,
    *,
    exclude_store_id: str | None = None,
) -> list[dict]:
    """Stores holding at least `quantity` units, most stocked first."""
    validate_quantity(quantity)
    q = (
        db.session.query(Inventory)
        .options(joinedload(Inventory.store))
        .filter(Inventory.product_id == product_id, Inventory.quantity >= quantity)
    )
    if exclude_store_id is not None:
        q = q.filter(Inventory.store_id != exclude_store_id)
    rows = q.order_by(Inventory.quantity.desc()).all()
    return [
        {"store_id": inv.store_id, "store_name": inv.store.name, "available": inv.quantity}
        for inv in rows
    ]


def get_stores_needing_restock(store_id: str | None = None) -> list[dict]:
    """Records at or below their own reorder level, with units needed to reach optimal."""
    q = (
        db.session.query(Inventory)
        .options(joinedload(Inventory.store), joinedload(Inventory.product))
        .filter(
            Inventory.reorder_level.isnot(None),
            Inventory.quantity <= Inventory.reorder_level,
        )
    )
    if store_id is not None:
        q = q.filter(Inventory.store_id == store_id)

    rows = q.order_by(Inventory.quantity.asc()).all()
    result = []
    for inv in rows:
        optimal = inv.optimal_level if inv.optimal_level is not None else inv.reorder_level
        result.append({
            "store_id": inv.store_id,
            "store_name": inv.store.name,
            "product_id": inv.product_id,
            "product_name": inv.product.name,
            "current_quantity": inv.quantity,
            "reorder_level": inv.reorder_level,
            "optimal_level": inv.optimal_level,
            "needed": max(optimal - inv.quantity, 0),
        })
    return result
