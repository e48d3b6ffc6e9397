# Overview: Append-only activity log for catalog mutations.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import ActivityLog
"""
Activity Log Invariants (authoritative)

- Append-only audit log: one entry per mutating catalog operation.
- No domain/business logic in the log itself.
- Entries are written inside the same DB transaction as the change they record,
  so a rolled-back mutation leaves no entry behind.
- details stays small: field names, counts and ids, never full values.
"""

ENTITY_PRODUCT = "PRODUCT"
ENTITY_INVENTORY = "INVENTORY"
ENTITY_TRANSFER = "PRODUCT_TRANSFER"

PRODUCT_CREATED = "PRODUCT_CREATED"
PRODUCT_UPDATED = "PRODUCT_UPDATED"
PRODUCT_ARCHIVE_REQUESTED = "PRODUCT_ARCHIVE_REQUESTED"
PRODUCT_ASSIGNED_TO_STORES = "PRODUCT_ASSIGNED_TO_STORES"
PRODUCT_REMOVED_FROM_STORE = "PRODUCT_REMOVED_FROM_STORE"
INVENTORY_ALLOCATED = "INVENTORY_ALLOCATED"
INVENTORY_ADJUSTED = "INVENTORY_ADJUSTED"
INVENTORY_LEVELS_UPDATED = "INVENTORY_LEVELS_UPDATED"
SHIPMENT_RECEIVED = "SHIPMENT_RECEIVED"
INVENTORY_RESERVED = "INVENTORY_RESERVED"
TRANSFER_INITIATED = "TRANSFER_INITIATED"
TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
TRANSFER_CANCELLED = "TRANSFER_CANCELLED"
TRANSFER_REJECTED = "TRANSFER_REJECTED"


def record_activity(
    *,
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None = None,
) -> ActivityLog:
    """
    Append one activity entry to the current transaction.

    - Does not commit; the caller's unit of work does.
    - Never updates or deletes an existing entry.
    """
    if not actor_id:
        raise ValueError("actor_id is required for activity entries")

    entry = ActivityLog(
        user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_activity(
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[dict]:
    q = db.session.query(ActivityLog)
    if entity_type is not None:
        q = q.filter(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(ActivityLog.entity_id == entity_id)
    if action is not None:
        q = q.filter(ActivityLog.action == action)

    rows = q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
    return [r.to_dict() for r in rows]
