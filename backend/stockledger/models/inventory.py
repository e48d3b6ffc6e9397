from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from stockledger.time_utils import to_utc_z
from stockledger.validation import cents_to_price


# Inventory change types
CHANGE_PURCHASE = "PURCHASE"
CHANGE_SALE = "SALE"
CHANGE_TRANSFER_OUT = "TRANSFER_OUT"
CHANGE_TRANSFER_IN = "TRANSFER_IN"
CHANGE_ADJUSTMENT = "ADJUSTMENT"
CHANGE_RETURN = "RETURN"
CHANGE_DAMAGE = "DAMAGE"

CHANGE_TYPES = (
    CHANGE_PURCHASE,
    CHANGE_SALE,
    CHANGE_TRANSFER_OUT,
    CHANGE_TRANSFER_IN,
    CHANGE_ADJUSTMENT,
    CHANGE_RETURN,
    CHANGE_DAMAGE,
)


class Inventory(db.Model):
    """
    Current stock for one product at one store.

    At most one row per (product_id, store_id). quantity never goes below
    zero; every change to it is explained by an InventoryHistory row written
    in the same transaction.
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_inventories_product_store"),
        db.CheckConstraint("quantity >= 0", name="ck_inventories_quantity_nonnegative"),
        db.Index("ix_inventories_quantity", "quantity"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    store_price_cents = db.Column(db.Integer, nullable=True)

    # NULL means "no per-record override"
    reorder_level = db.Column(db.Integer, nullable=True)
    optimal_level = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="inventories")
    store = db.relationship("Store", backref=db.backref("inventories", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Inventory product_id={self.product_id} store_id={self.store_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "store_price": cents_to_price(self.store_price_cents),
            "store_price_cents": self.store_price_cents,
            "reorder_level": self.reorder_level,
            "optimal_level": self.optimal_level,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryHistory(db.Model):
    """
    Immutable ledger line explaining one stock-quantity change.

    inventory_id is a weak reference: a zero-quantity Inventory row may be
    removed together with its store assignment, and its history must outlive
    it. product_id/store_id are kept on the line for that reason.

    Invariant: previous_quantity + quantity_change == new_quantity.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.CheckConstraint(
            "previous_quantity + quantity_change = new_quantity",
            name="ck_inventory_history_balanced",
        ),
        db.Index("ix_invhist_product_store_created", "product_id", "store_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    inventory_id = db.Column(db.String(36), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False)

    change_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    reference_id = db.Column(db.String(64), nullable=True)
    reference_type = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "change_type": self.change_type,
            "quantity_change": self.quantity_change,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
