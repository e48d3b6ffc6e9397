# backend/stockledger/services/transfer_service.py
"""
Inter-store transfer service.

WHY: Move stock of one product between two stores with a reviewable
workflow. Quantities change only when a transfer is completed or rejected,
and every change writes history at both stores referencing the transfer.

LIFECYCLE:
1. PENDING: initiate_transfer checks source stock; nothing moves yet
2. COMPLETED: complete_transfer moves stock (TRANSFER_OUT / TRANSFER_IN)
3. CANCELLED: cancel_transfer abandons a PENDING transfer
4. REJECTED: reject_transfer reverses a COMPLETED transfer

RULES:
- Source and destination stores differ; quantity > 0.
- The destination must be assigned the product (stock only exists for
  assigned pairs).
- Source stock is re-checked on completion; the destination must still
  hold the transferred units for a rejection.
"""
from __future__ import annotations

import math

from flask import current_app

from ..extensions import db
from ..models import Inventory, ProductTransfer
from ..models.inventory import CHANGE_TRANSFER_IN, CHANGE_TRANSFER_OUT
from ..models.transfers import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_REJECTED,
    TRANSFER_STATUSES,
)
from ..time_utils import normalize_datetime, utcnow
from ..validation import (
    InsufficientInventoryError,
    InvalidTransferStatusError,
    InventoryNotFoundError,
    MissingFieldError,
    SameStoreError,
    TransferNotFoundError,
    ValidationError,
    require_fields,
    validate_choice,
    validate_quantity,
)
from . import activity_service
from .history_service import record_inventory_change
from .stock_service import find_inventory, require_assignment, require_product, require_store_row
from .unit_of_work import lock_for_update, unit_of_work

TRANSFER_FILTERS = {"status", "product_id", "from_store_id", "to_store_id", "initiated_by", "date_from", "date_to"}


def _require_transfer(transfer_id: str, *, lock: bool = False) -> ProductTransfer:
    query = db.session.query(ProductTransfer).filter_by(id=transfer_id)
    if lock:
        query = lock_for_update(query)
    transfer = query.first()
    if transfer is None:
        raise TransferNotFoundError("Transfer does not exist", entity_id=transfer_id)
    return transfer


def _require_status(transfer: ProductTransfer, expected: str, verb: str) -> None:
    if transfer.status != expected:
        raise InvalidTransferStatusError(
            f"Transfer is {transfer.status}, only {expected} transfers can be {verb}",
            entity_id=transfer.id,
        )


def _lock_pair(transfer: ProductTransfer) -> tuple[Inventory | None, Inventory | None]:
    # Always lock in store-id order
    rows = {}
    for store_id in sorted((transfer.from_store_id, transfer.to_store_id)):
        rows[store_id] = find_inventory(transfer.product_id, store_id, lock=True)
    return rows[transfer.from_store_id], rows[transfer.to_store_id]


def _move(
    inventory: Inventory,
    delta: int,
    *,
    change_type: str,
    transfer: ProductTransfer,
    actor_id: str,
    reference_type: str,
    notes: str,
) -> dict:
    previous = inventory.quantity
    inventory.quantity = previous + delta
    entry = record_inventory_change(
        inventory,
        change_type=change_type,
        previous_quantity=previous,
        actor_id=actor_id,
        reference_type=reference_type,
        reference_id=transfer.id,
        notes=notes,
    )
    return entry.to_dict()


def initiate_transfer(
    *,
    product_id: str,
    from_store_id: str,
    to_store_id: str,
    quantity: int,
    actor_id: str,
    reason: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Open a PENDING transfer after checking the source holds enough stock.

    Raises:
        InvalidQuantityError / SameStoreError / MissingFieldError
        ProductNotFoundError / StoreNotFoundError
        AssignmentNotFoundError: destination is not assigned the product
        InventoryNotFoundError: no stock record at the source
        InsufficientInventoryError: source holds fewer units than requested
    """
    require_fields({
        "product_id": product_id,
        "from_store_id": from_store_id,
        "to_store_id": to_store_id,
        "actor_id": actor_id,
    })
    validate_quantity(quantity)
    if from_store_id == to_store_id:
        raise SameStoreError("Source and destination stores must be different", entity_id=to_store_id)

    with unit_of_work() as session:
        product = require_product(product_id)
        from_store = require_store_row(from_store_id)
        require_store_row(to_store_id)
        require_assignment(product_id, to_store_id)

        source = find_inventory(product_id, from_store_id, lock=True)
        if source is None:
            raise InventoryNotFoundError(
                f"Product {product.name} is not stocked at source store {from_store.name}",
                entity_id=product_id,
            )
        if source.quantity < quantity:
            raise InsufficientInventoryError(
                f"Source store has {source.quantity} units, but {quantity} requested for transfer",
                entity_id=source.id,
            )

        transfer = ProductTransfer(
            product_id=product_id,
            from_store_id=from_store_id,
            to_store_id=to_store_id,
            quantity=quantity,
            status=TRANSFER_STATUS_PENDING,
            reason=reason,
            notes=notes,
            initiated_by=actor_id,
        )
        session.add(transfer)
        session.flush()

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.TRANSFER_INITIATED,
            entity_type=activity_service.ENTITY_TRANSFER,
            entity_id=transfer.id,
            details={
                "product_id": product_id,
                "from_store_id": from_store_id,
                "to_store_id": to_store_id,
                "quantity": quantity,
                "reason": reason,
            },
        )

    current_app.logger.info(
        "Initiated transfer %s: %s units of product %s from %s to %s (actor=%s)",
        transfer.id, quantity, product_id, from_store_id, to_store_id, actor_id,
    )
    return transfer.to_dict()


def complete_transfer(*, transfer_id: str, actor_id: str) -> dict:
    """
    Move the stock of a PENDING transfer.

    Creates the destination stock record at zero when it does not exist yet.

    Returns:
        {"transfer", "source_inventory", "destination_inventory",
         "source_history", "destination_history"}
    """
    require_fields({"transfer_id": transfer_id, "actor_id": actor_id})

    with unit_of_work() as session:
        transfer = _require_transfer(transfer_id, lock=True)
        _require_status(transfer, TRANSFER_STATUS_PENDING, "completed")
        require_assignment(transfer.product_id, transfer.to_store_id)

        source, destination = _lock_pair(transfer)
        available = source.quantity if source is not None else 0
        if available < transfer.quantity:
            raise InsufficientInventoryError(
                f"Source now has {available} units, but {transfer.quantity} requested for transfer",
                entity_id=transfer.id,
            )
        if destination is None:
            destination = Inventory(
                product_id=transfer.product_id,
                store_id=transfer.to_store_id,
                quantity=0,
            )
            session.add(destination)
            session.flush()

        source_history = _move(
            source, -transfer.quantity,
            change_type=CHANGE_TRANSFER_OUT,
            transfer=transfer,
            actor_id=actor_id,
            reference_type="TRANSFER",
            notes=f"Transfer to {transfer.to_store.name}",
        )
        destination_history = _move(
            destination, transfer.quantity,
            change_type=CHANGE_TRANSFER_IN,
            transfer=transfer,
            actor_id=actor_id,
            reference_type="TRANSFER",
            notes=f"Transfer from {transfer.from_store.name}",
        )

        transfer.status = TRANSFER_STATUS_COMPLETED
        transfer.completed_by = actor_id
        transfer.completed_at = utcnow()

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.TRANSFER_COMPLETED,
            entity_type=activity_service.ENTITY_TRANSFER,
            entity_id=transfer.id,
            details={
                "product_id": transfer.product_id,
                "quantity": transfer.quantity,
                "from_store_id": transfer.from_store_id,
                "to_store_id": transfer.to_store_id,
            },
        )

    current_app.logger.info("Completed transfer %s (actor=%s)", transfer_id, actor_id)
    return {
        "transfer": transfer.to_dict(),
        "source_inventory": source.to_dict(),
        "destination_inventory": destination.to_dict(),
        "source_history": source_history,
        "destination_history": destination_history,
    }


def cancel_transfer(*, transfer_id: str, actor_id: str, reason: str | None = None) -> dict:
    """Abandon a PENDING transfer. No stock moves."""
    require_fields({"transfer_id": transfer_id, "actor_id": actor_id})

    with unit_of_work():
        transfer = _require_transfer(transfer_id, lock=True)
        _require_status(transfer, TRANSFER_STATUS_PENDING, "cancelled")

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.reason = reason or transfer.reason
        transfer.closed_by = actor_id
        transfer.closed_at = utcnow()

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.TRANSFER_CANCELLED,
            entity_type=activity_service.ENTITY_TRANSFER,
            entity_id=transfer.id,
            details={"reason": reason},
        )

    current_app.logger.info("Cancelled transfer %s (actor=%s)", transfer_id, actor_id)
    return transfer.to_dict()


def reject_transfer(*, transfer_id: str, actor_id: str, reason: str) -> dict:
    """
    Reverse a COMPLETED transfer, moving the units back to the source.

    Raises:
        MissingFieldError: no reason given
        TransferNotFoundError / InvalidTransferStatusError
        InventoryNotFoundError: the source stock record no longer exists
        InsufficientInventoryError: destination no longer holds the units
    """
    require_fields({"transfer_id": transfer_id, "actor_id": actor_id})
    if not reason or not str(reason).strip():
        raise MissingFieldError("Reason is required to reject a transfer")

    with unit_of_work():
        transfer = _require_transfer(transfer_id, lock=True)
        _require_status(transfer, TRANSFER_STATUS_COMPLETED, "rejected")

        source, destination = _lock_pair(transfer)
        held = destination.quantity if destination is not None else 0
        if held < transfer.quantity:
            raise InsufficientInventoryError(
                f"Destination now has {held} units, cannot return {transfer.quantity} units",
                entity_id=transfer.id,
            )
        if source is None:
            raise InventoryNotFoundError(
                f"Source store {transfer.from_store_id} no longer stocks product {transfer.product_id}",
                entity_id=transfer.product_id,
            )

        notes = f"Transfer rejected: {reason}"
        source_history = _move(
            source, transfer.quantity,
            change_type=CHANGE_TRANSFER_IN,
            transfer=transfer,
            actor_id=actor_id,
            reference_type="TRANSFER_REJECTION",
            notes=notes,
        )
        destination_history = _move(
            destination, -transfer.quantity,
            change_type=CHANGE_TRANSFER_OUT,
            transfer=transfer,
            actor_id=actor_id,
            reference_type="TRANSFER_REJECTION",
            notes=notes,
        )

        transfer.status = TRANSFER_STATUS_REJECTED
        transfer.reason = reason
        transfer.closed_by = actor_id
        transfer.closed_at = utcnow()

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.TRANSFER_REJECTED,
            entity_type=activity_service.ENTITY_TRANSFER,
            entity_id=transfer.id,
            details={"reason": reason},
        )

    current_app.logger.info("Rejected transfer %s (actor=%s)", transfer_id, actor_id)
    return {
        "transfer": transfer.to_dict(),
        "source_inventory": source.to_dict(),
        "destination_inventory": destination.to_dict(),
        "source_history": source_history,
        "destination_history": destination_history,
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _summary(transfer: ProductTransfer) -> dict:
    data = transfer.to_dict()
    data["product"] = {"id": transfer.product.id, "name": transfer.product.name}
    data["from_store"] = {"id": transfer.from_store.id, "name": transfer.from_store.name}
    data["to_store"] = {"id": transfer.to_store.id, "name": transfer.to_store.name}
    return data


def get_transfer(transfer_id: str) -> dict:
    return _summary(_require_transfer(transfer_id))


def list_transfers(filters: dict | None = None, page: int = 1, limit: int | None = None) -> dict:
    """Filtered, paged transfers, newest first."""
    filters = dict(filters or {})
    unknown = sorted(k for k in filters if k not in TRANSFER_FILTERS)
    if unknown:
        raise ValidationError(f"Unknown filter: {', '.join(unknown)}")

    if limit is None:
        limit = current_app.config.get("SEARCH_DEFAULT_LIMIT", 50)
    validate_quantity(page, field="page")
    validate_quantity(limit, field="limit")
    limit = min(limit, current_app.config.get("SEARCH_MAX_LIMIT", 200))

    q = db.session.query(ProductTransfer)
    if filters.get("status"):
        q = q.filter(ProductTransfer.status == validate_choice(filters["status"], TRANSFER_STATUSES, field="status"))
    for key in ("product_id", "from_store_id", "to_store_id", "initiated_by"):
        if filters.get(key):
            q = q.filter(getattr(ProductTransfer, key) == filters[key])
    try:
        if filters.get("date_from"):
            q = q.filter(ProductTransfer.created_at >= normalize_datetime(filters["date_from"]))
        if filters.get("date_to"):
            q = q.filter(ProductTransfer.created_at <= normalize_datetime(filters["date_to"]))
    except ValueError:
        raise ValidationError("date_from and date_to must be ISO-8601 dates")

    total = q.count()
    rows = (
        q.order_by(ProductTransfer.created_at.desc(), ProductTransfer.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transfers": [_summary(t) for t in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


def get_pending_transfers_for_store(store_id: str) -> dict:
    """PENDING transfers leaving and arriving at a store, oldest first."""
    require_store_row(store_id)
    base = db.session.query(ProductTransfer).filter(ProductTransfer.status == TRANSFER_STATUS_PENDING)
    order = (ProductTransfer.created_at.asc(), ProductTransfer.id.asc())
    outgoing = base.filter(ProductTransfer.from_store_id == store_id).order_by(*order).all()
    incoming = base.filter(ProductTransfer.to_store_id == store_id).order_by(*order).all()
    return {
        "outgoing": [_summary(t) for t in outgoing],
        "incoming": [_summary(t) for t in incoming],
    }
