from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from stockledger.time_utils import to_utc_z


class Sale(db.Model):
    """
    Sale header written by the point-of-sale layer.

    The catalog only reads sales: recent sales block an archive request and
    sale item counts appear on product detail.
    """
    __tablename__ = "sales"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "product_id", name="uq_sale_items_sale_product"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True))
    product = db.relationship("Product", backref=db.backref("sale_items", lazy=True))
