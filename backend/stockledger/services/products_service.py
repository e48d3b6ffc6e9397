# backend/stockledger/services/products_service.py
"""
Product Catalog Service

Owns product identity, type-specific attribute validation and lifecycle.

- Cheap validation (required fields, price, type/attribute shape) runs before
  a transaction is opened.
- Name uniqueness is checked inside the transaction and backed by the
  uq_products_name constraint, so a concurrent duplicate fails as a conflict.
- Every mutation writes exactly one ActivityLog entry in the same transaction.
- Products are never deleted; archive_product records the request and fails.
"""
from __future__ import annotations

import math
from datetime import timedelta

from flask import current_app
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import joinedload

from ..attributes import (
    PRODUCT_GRADES,
    PRODUCT_TYPE_TIRE,
    PRODUCT_TYPES,
    TIRE_CATEGORIES,
    TIRE_USAGES,
    attributes_of,
    attributes_to_columns,
    patch_attributes,
    resolve_attributes,
)
from ..extensions import db
from ..models import Inventory, Product, Sale, SaleItem, Store, StoreProduct
from ..validation import (
    DuplicateNameError,
    InvalidTypeFieldError,
    MissingFieldError,
    NoUpdatesProvidedError,
    ProductDeletionPreventedError,
    ProductHasInventoryError,
    ProductHasRecentSalesError,
    ProductNotFoundError,
    ValidationError,
    require_fields,
    cents_to_price,
    price_to_cents,
    validate_choice,
    validate_name,
    validate_quantity,
)
from . import activity_service
from .assignment_service import assign_to_store, serialize_assignment
from .stock_service import require_product, require_store_row
from .unit_of_work import unit_of_work
from ..time_utils import utcnow

PRODUCT_UPDATABLE_FIELDS = {"name", "base_price", "grade", "commodity", "type", "tire_fields", "bale_fields"}

SEARCH_FILTERS = {
    "name", "type", "grade", "commodity", "tire_category", "tire_usage",
    "min_price", "max_price", "in_stock", "store_id",
}


def _validate_store_assignments(store_assignments) -> list[dict]:
    cleaned = []
    for raw in store_assignments or []:
        store_id = raw.get("store_id")
        if not store_id:
            raise MissingFieldError("store_id is required for each store assignment")
        qty = raw.get("initial_quantity") or 0
        validate_quantity(qty, field=f"initial quantity for store {store_id}", allow_zero=True)
        price = raw.get("store_price")
        cents = price_to_cents(price, field="store_price") if price is not None else None
        cleaned.append({"store_id": store_id, "initial_quantity": qty, "store_price_cents": cents})
    return cleaned


def _ensure_name_available(name: str, *, exclude_id: str | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.name == name)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise DuplicateNameError("A product with this name already exists", entity_id=name)


def create_product(
    *,
    name: str,
    base_price: float,
    product_type: str,
    grade: str,
    actor_id: str,
    commodity: str | None = None,
    tire_fields=None,
    bale_fields=None,
    store_assignments: list[dict] | None = None,
) -> dict:
    """
    Create a catalog product, optionally assigning and stocking it.

    Args:
        name: Unique product name
        base_price: Non-negative base price
        product_type: TIRE or BALE (immutable afterwards)
        grade: A, B or C
        actor_id: Authenticated caller
        commodity: Optional commodity label
        tire_fields / bale_fields: Attribute bag (dict or attributes dataclass)
            matching product_type; the other bag must be empty
        store_assignments: Optional [{"store_id", "initial_quantity"?, "store_price"?}]

    Returns:
        {"product": {...}, "store_assignments": [...]}

    Raises:
        MissingFieldError / InvalidPriceError / InvalidTypeFieldError: before any write
        DuplicateNameError: name taken
        StoreNotFoundError / AlreadyAssignedError: whole creation is rolled back
    """
    require_fields({
        "name": name,
        "base_price": base_price,
        "type": product_type,
        "grade": grade,
        "actor_id": actor_id,
    })
    name = validate_name(name)
    base_price_cents = price_to_cents(base_price)
    validate_choice(grade, PRODUCT_GRADES, field="grade")
    attrs = resolve_attributes(product_type, tire_fields, bale_fields)
    assignments = _validate_store_assignments(store_assignments)

    results = []
    with unit_of_work() as session:
        _ensure_name_available(name)

        product = Product(
            name=name,
            base_price_cents=base_price_cents,
            type=product_type,
            grade=grade,
            commodity=commodity,
            **attributes_to_columns(attrs),
        )
        session.add(product)
        session.flush()  # ensure product.id exists before assignments

        for assignment in assignments:
            store = require_store_row(assignment["store_id"])
            results.append(
                assign_to_store(
                    product=product,
                    store=store,
                    actor_id=actor_id,
                    initial_quantity=assignment["initial_quantity"],
                    store_price_cents=assignment["store_price_cents"],
                    reference_type="PRODUCT_CREATION",
                    notes=f"Initial stock for new product {product.name}",
                )
            )

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.PRODUCT_CREATED,
            entity_type=activity_service.ENTITY_PRODUCT,
            entity_id=product.id,
            details={
                "name": name,
                "type": product_type,
                "grade": grade,
                "store_assignments": len(assignments),
                "stores": [a["store_id"] for a in assignments],
            },
        )

    current_app.logger.info("Created product %s %r (actor=%s)", product.id, product.name, actor_id)
    return {
        "product": product.to_dict(),
        "store_assignments": [serialize_assignment(r) for r in results],
    }


def update_product(*, product_id: str, updates: dict, actor_id: str) -> dict:
    """
    Update mutable product fields.

    The type never changes. Only the attribute bag matching the stored type is
    applied; a bag for the other type is ignored. The activity entry lists the
    names of the columns that changed, not their values.

    Raises:
        NoUpdatesProvidedError: empty update
        ValidationError / MissingFieldError / InvalidPriceError: bad input
        ProductNotFoundError
        InvalidTypeFieldError: attempt to change type, or bad attribute values
        DuplicateNameError: new name used by another product
    """
    if not updates:
        raise NoUpdatesProvidedError("At least one field must be updated")
    if not actor_id:
        raise MissingFieldError("Missing required fields: actor_id")

    unknown = sorted(k for k in updates if k not in PRODUCT_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    scalar = {}
    if "name" in updates:
        scalar["name"] = validate_name(updates["name"])
    if "base_price" in updates:
        require_fields({"base_price": updates["base_price"]})
        scalar["base_price_cents"] = price_to_cents(updates["base_price"])
    if "grade" in updates:
        scalar["grade"] = validate_choice(updates["grade"], PRODUCT_GRADES, field="grade")
    if "commodity" in updates:
        scalar["commodity"] = updates["commodity"]

    with unit_of_work():
        product = require_product(product_id, lock=True)

        if "type" in updates and updates["type"] != product.type:
            raise InvalidTypeFieldError("Product type cannot be changed", entity_id=product_id)

        if "name" in scalar and scalar["name"] != product.name:
            _ensure_name_available(scalar["name"], exclude_id=product.id)

        changed = []
        for field, value in scalar.items():
            if getattr(product, field) != value:
                setattr(product, field, value)
                changed.append(field)

        bag_key = "tire_fields" if product.type == PRODUCT_TYPE_TIRE else "bale_fields"
        if updates.get(bag_key) is not None:
            new_attrs, attr_changed = patch_attributes(attributes_of(product), updates[bag_key])
            for column, value in attributes_to_columns(new_attrs).items():
                setattr(product, column, value)
            changed.extend(attr_changed)

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.PRODUCT_UPDATED,
            entity_type=activity_service.ENTITY_PRODUCT,
            entity_id=product_id,
            details={"updated_fields": sorted(changed)},
        )

    current_app.logger.info("Updated product %s fields=%s (actor=%s)", product_id, sorted(changed), actor_id)
    return product.to_dict()


def archive_product(*, product_id: str, actor_id: str, reason: str | None = None) -> None:
    """
    Record an archive request. Always fails.

    Products are never deleted or flagged. When the product exists, holds no
    stock and has no sale inside the recent-sales window, the request is
    logged (PRODUCT_ARCHIVE_REQUESTED) and committed, then
    ProductDeletionPreventedError is raised. The product row is not touched.

    Raises:
        ProductNotFoundError
        ProductHasInventoryError: stock above zero in any store (nothing logged)
        ProductHasRecentSalesError: sale inside the window (nothing logged)
        ProductDeletionPreventedError: every other outcome
    """
    if not actor_id:
        raise MissingFieldError("Missing required fields: actor_id")

    window_days = current_app.config.get("RECENT_SALES_WINDOW_DAYS", 30)

    with unit_of_work() as session:
        require_product(product_id)

        on_hand = (
            session.query(func.coalesce(func.sum(Inventory.quantity), 0))
            .filter(Inventory.product_id == product_id, Inventory.quantity > 0)
            .scalar()
        )
        if on_hand:
            raise ProductHasInventoryError(
                f"Cannot archive product with {on_hand} units in inventory",
                entity_id=product_id,
            )

        cutoff = utcnow() - timedelta(days=window_days)
        recent_sale = (
            session.query(SaleItem.id)
            .join(Sale, SaleItem.sale_id == Sale.id)
            .filter(SaleItem.product_id == product_id, Sale.created_at >= cutoff)
            .first()
        )
        if recent_sale is not None:
            raise ProductHasRecentSalesError(
                f"Cannot archive product with sales in the last {window_days} days",
                entity_id=product_id,
            )

        activity_service.record_activity(
            actor_id=actor_id,
            action=activity_service.PRODUCT_ARCHIVE_REQUESTED,
            entity_type=activity_service.ENTITY_PRODUCT,
            entity_id=product_id,
            details={"reason": reason, "action": "PREVENTED_DELETION"},
        )

    current_app.logger.info("Archive requested for product %s (actor=%s); deletion prevented", product_id, actor_id)
    raise ProductDeletionPreventedError(
        "Products cannot be deleted. Consider marking as discontinued instead.",
        entity_id=product_id,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _sale_item_counts(product_ids: list[str]) -> dict[str, int]:
    if not product_ids:
        return {}
    rows = (
        db.session.query(SaleItem.product_id, func.count(SaleItem.id))
        .filter(SaleItem.product_id.in_(product_ids))
        .group_by(SaleItem.product_id)
        .all()
    )
    return {pid: int(n) for pid, n in rows}


def get_product_with_inventory(product_id: str) -> dict:
    """
    Product detail with per-store stock, assignments and counts.

    Raises:
        ProductNotFoundError
    """
    product = (
        db.session.query(Product)
        .options(
            joinedload(Product.inventories).joinedload(Inventory.store),
            joinedload(Product.store_products).joinedload(StoreProduct.store),
        )
        .filter(Product.id == product_id)
        .first()
    )
    if product is None:
        raise ProductNotFoundError("Product does not exist", entity_id=product_id)

    inventories = sorted(product.inventories, key=lambda inv: (not inv.store.is_main_store, inv.store.name))
    assignments = sorted(product.store_products, key=lambda sp: sp.store.name)

    data = product.to_dict()
    data["inventories"] = [
        {
            **inv.to_dict(),
            "store": {
                "id": inv.store.id,
                "name": inv.store.name,
                "location": inv.store.location,
                "is_main_store": inv.store.is_main_store,
            },
        }
        for inv in inventories
    ]
    data["store_assignments"] = [
        {**sp.to_dict(), "store": {"id": sp.store.id, "name": sp.store.name}}
        for sp in assignments
    ]
    data["total_quantity"] = sum(inv.quantity for inv in inventories)
    data["counts"] = {
        "sale_items": _sale_item_counts([product.id]).get(product.id, 0),
        "inventories": len(inventories),
        "store_assignments": len(assignments),
    }
    return data


def search_products(filters: dict | None = None, page: int = 1, limit: int | None = None) -> dict:
    """
    Filtered, paged product listing ordered by name.

    Filters combine with AND. name and commodity are case-insensitive
    substring matches.

    in_stock=True  -> at least one Inventory row with quantity > 0
    in_stock=False -> every Inventory row has quantity 0; products with no
                      Inventory rows at all match too

    Pagination is 1-indexed; total_pages = ceil(total / limit).
    """
    filters = dict(filters or {})
    unknown = sorted(k for k in filters if k not in SEARCH_FILTERS)
    if unknown:
        raise ValidationError(f"Unknown filter: {', '.join(unknown)}")

    if limit is None:
        limit = current_app.config.get("SEARCH_DEFAULT_LIMIT", 50)
    max_limit = current_app.config.get("SEARCH_MAX_LIMIT", 200)
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("page must be an integer >= 1")
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be an integer >= 1")
    limit = min(limit, max_limit)

    q = db.session.query(Product)

    if filters.get("name"):
        q = q.filter(Product.name.icontains(filters["name"], autoescape=True))
    if filters.get("type"):
        q = q.filter(Product.type == validate_choice(filters["type"], PRODUCT_TYPES, field="type"))
    if filters.get("grade"):
        q = q.filter(Product.grade == validate_choice(filters["grade"], PRODUCT_GRADES, field="grade"))
    if filters.get("commodity"):
        q = q.filter(Product.commodity.icontains(filters["commodity"], autoescape=True))
    if filters.get("tire_category"):
        value = validate_choice(filters["tire_category"], TIRE_CATEGORIES, field="tire_category")
        q = q.filter(Product.tire_category == value)
    if filters.get("tire_usage"):
        value = validate_choice(filters["tire_usage"], TIRE_USAGES, field="tire_usage")
        q = q.filter(Product.tire_usage == value)
    if filters.get("min_price") is not None:
        q = q.filter(Product.base_price_cents >= price_to_cents(filters["min_price"], field="min_price"))
    if filters.get("max_price") is not None:
        q = q.filter(Product.base_price_cents <= price_to_cents(filters["max_price"], field="max_price"))
    if filters.get("store_id"):
        q = q.filter(Product.store_products.any(StoreProduct.store_id == filters["store_id"]))

    in_stock = filters.get("in_stock")
    if in_stock is not None and not isinstance(in_stock, bool):
        raise ValidationError("in_stock must be true or false")
    if in_stock is True:
        q = q.filter(Product.inventories.any(Inventory.quantity > 0))
    elif in_stock is False:
        q = q.filter(~Product.inventories.any(Inventory.quantity > 0))

    total = q.count()
    products = (
        q.options(joinedload(Product.inventories))
        .order_by(Product.name.asc(), Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    counts = _sale_item_counts([p.id for p in products])
    items = []
    for p in products:
        data = p.to_dict()
        data["inventories"] = [
            {"store_id": inv.store_id, "quantity": inv.quantity, "store_price": cents_to_price(inv.store_price_cents)}
            for inv in p.inventories
        ]
        data["counts"] = {"sale_items": counts.get(p.id, 0)}
        items.append(data)

    return {
        "products": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


def get_low_stock_products(threshold: int | None = None) -> list[dict]:
    """
    Inventory rows at or below the global threshold, or at or below their own
    reorder_level when one is set, grouped by product.

    A NULL reorder_level is not an override: such rows are judged against the
    global threshold only. Groups are ordered by their lowest quantity and each
    group's per-store rows are sorted ascending by quantity.
    """
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    validate_quantity(threshold, field="threshold", allow_zero=True)

    rows = (
        db.session.query(Inventory)
        .join(Store, Inventory.store_id == Store.id)
        .options(joinedload(Inventory.product), joinedload(Inventory.store))
        .filter(
            or_(
                Inventory.quantity <= threshold,
                and_(
                    Inventory.reorder_level.isnot(None),
                    Inventory.quantity <= Inventory.reorder_level,
                ),
            )
        )
        .order_by(Inventory.quantity.asc(), Store.name.asc())
        .all()
    )

    groups: dict[str, dict] = {}
    for inv in rows:
        group = groups.get(inv.product_id)
        if group is None:
            product = inv.product
            group = groups[inv.product_id] = {
                "product": {
                    "id": product.id,
                    "name": product.name,
                    "type": product.type,
                    "grade": product.grade,
                    "base_price": cents_to_price(product.base_price_cents),
                },
                "inventories": [],
            }
        group["inventories"].append({
            "store_id": inv.store_id,
            "store_name": inv.store.name,
            "quantity": inv.quantity,
            "reorder_level": inv.reorder_level,
            "optimal_level": inv.optimal_level,
        })
    return list(groups.values())
