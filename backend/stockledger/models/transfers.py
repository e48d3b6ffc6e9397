from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from stockledger.time_utils import to_utc_z


# Transfer status constants
TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_COMPLETED = "COMPLETED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"
TRANSFER_STATUS_REJECTED = "REJECTED"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_REJECTED,
)


class ProductTransfer(db.Model):
    """
    Movement of one product's stock from one store to another.

    LIFECYCLE:
    1. PENDING: Initiated; source stock checked but not moved
    2. COMPLETED: Stock moved; TRANSFER_OUT at source, TRANSFER_IN at destination
    3. CANCELLED: Abandoned while PENDING; no stock moved
    4. REJECTED: A COMPLETED transfer reversed; stock moved back

    Quantities only change on complete and reject, each time with a
    history line at both stores referencing the transfer id.
    """
    __tablename__ = "product_transfers"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_product_transfers_quantity_positive"),
        db.CheckConstraint("from_store_id <> to_store_id", name="ck_product_transfers_distinct_stores"),
        db.Index("ix_product_transfers_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    from_store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    to_store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # PENDING, COMPLETED, CANCELLED, REJECTED
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING)

    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    # Actor attribution per lifecycle step
    initiated_by = db.Column(db.String(64), nullable=False)
    completed_by = db.Column(db.String(64), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)  # cancelled or rejected

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")
    from_store = db.relationship("Store", foreign_keys=[from_store_id])
    to_store = db.relationship("Store", foreign_keys=[to_store_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductTransfer id={self.id} status={self.status} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "from_store_id": self.from_store_id,
            "to_store_id": self.to_store_id,
            "quantity": self.quantity,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "initiated_by": self.initiated_by,
            "completed_by": self.completed_by,
            "closed_by": self.closed_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "closed_at": to_utc_z(self.closed_at),
        }
