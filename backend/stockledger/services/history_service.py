# Overview: Inventory history recorder; one immutable ledger line per quantity change.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Inventory, InventoryHistory
from ..models.inventory import CHANGE_TYPES
from ..validation import InventoryNotFoundError


def record_inventory_change(
    inventory: Inventory,
    *,
    change_type: str,
    previous_quantity: int,
    actor_id: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
) -> InventoryHistory:
    """
    Append the history line for a quantity change already applied to `inventory`.

    The delta is derived from previous_quantity and the record's current
    quantity, so previous + change == new holds by construction and new
    always equals the stored quantity. Must be called inside the same unit
    of work as the mutation. Does not commit.
    """
    if change_type not in CHANGE_TYPES:
        raise ValueError(f"unknown inventory change type {change_type!r}")
    if not actor_id:
        raise ValueError("actor_id is required for inventory history")

    # Inventory.id is generated client-side; flush so it exists for new rows
    if inventory.id is None:
        db.session.flush()

    new_quantity = inventory.quantity
    entry = InventoryHistory(
        inventory_id=inventory.id,
        product_id=inventory.product_id,
        store_id=inventory.store_id,
        change_type=change_type,
        quantity_change=new_quantity - previous_quantity,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=actor_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_inventory_history(
    product_id: str,
    store_id: str | None = None,
    *,
    limit: int = 100,
) -> list[dict]:
    q = db.session.query(InventoryHistory).filter(InventoryHistory.product_id == product_id)
    if store_id is not None:
        q = q.filter(InventoryHistory.store_id == store_id)
    rows = q.order_by(InventoryHistory.created_at.desc(), InventoryHistory.id.desc()).limit(limit).all()
    return [r.to_dict() for r in rows]


def _check_ledger(inventory: Inventory) -> dict:
    lines = (
        db.session.query(InventoryHistory)
        .filter(InventoryHistory.inventory_id == inventory.id)
        .order_by(InventoryHistory.id.asc())
        .all()
    )
    calculated = lines[0].previous_quantity if lines else 0
    chain_breaks = []
    for line in lines:
        if line.previous_quantity != calculated:
            chain_breaks.append({
                "history_id": line.id,
                "expected_previous": calculated,
                "recorded_previous": line.previous_quantity,
            })
        calculated = line.previous_quantity + line.quantity_change

    discrepancy = inventory.quantity - calculated
    result = {
        "inventory_id": inventory.id,
        "product_id": inventory.product_id,
        "product_name": inventory.product.name,
        "store_id": inventory.store_id,
        "store_name": inventory.store.name,
        "current_quantity": inventory.quantity,
        "calculated_quantity": calculated,
        "discrepancy": discrepancy,
        "history_count": len(lines),
        "is_valid": discrepancy == 0 and not chain_breaks,
    }
    if chain_breaks:
        result["chain_breaks"] = chain_breaks
    return result


def validate_inventory_integrity(inventory_id: str | None = None) -> list[dict]:
    """
    Replay the history ledger of each stock record and compare it with the
    stored quantity.

    The replay starts from the first line's previous_quantity and applies
    every quantity_change in insertion order. A line whose previous_quantity
    does not continue from the line before is reported as a chain break.
    Read-only.

    Raises:
        InventoryNotFoundError: inventory_id given but unknown
    """
    q = db.session.query(Inventory)
    if inventory_id is not None:
        q = q.filter(Inventory.id == inventory_id)
    inventories = q.order_by(Inventory.product_id.asc(), Inventory.store_id.asc()).all()
    if inventory_id is not None and not inventories:
        raise InventoryNotFoundError("Inventory record does not exist", entity_id=inventory_id)

    results = [_check_ledger(inv) for inv in inventories]
    invalid = sum(1 for r in results if not r["is_valid"])
    if invalid:
        current_app.logger.warning("Inventory integrity check found %s invalid record(s)", invalid)
    return results
