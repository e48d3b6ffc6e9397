from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from stockledger.time_utils import to_utc_z
from stockledger.validation import cents_to_price


class Store(db.Model):
    """
    Physical retail location; the unit of inventory partitioning.

    Stores are referenced by the catalog but owned by store operations.
    """
    __tablename__ = "stores"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    is_main_store = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "phone_number": self.phone_number,
            "email": self.email,
            "is_main_store": self.is_main_store,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog identity.

    TYPE DESIGN DECISION:
    `type` is fixed at creation. Tire columns are only ever populated for
    TIRE products and bale columns only for BALE products; see
    stockledger.attributes for the tagged variant that writes them.

    Products are never physically deleted. An archive request is recorded in
    the activity log and rejected (see products_service.archive_product).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_products_name"),
        db.Index("ix_products_type_grade", "type", "grade"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    base_price_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)  # TIRE, BALE
    grade = db.Column(db.String(1), nullable=False)  # A, B, C
    commodity = db.Column(db.String(120), nullable=True)

    # Tire-specific
    tire_category = db.Column(db.String(32), nullable=True)
    tire_usage = db.Column(db.String(32), nullable=True)
    tire_size = db.Column(db.String(64), nullable=True)
    load_index = db.Column(db.String(32), nullable=True)
    speed_rating = db.Column(db.String(32), nullable=True)
    warranty_period = db.Column(db.String(64), nullable=True)

    # Bale-specific
    bale_weight = db.Column(db.Float, nullable=True)
    bale_category = db.Column(db.String(120), nullable=True)
    origin_country = db.Column(db.String(120), nullable=True)
    import_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    inventories = db.relationship("Inventory", back_populates="product", lazy=True)
    store_products = db.relationship("StoreProduct", back_populates="product", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        from ..attributes import attributes_of

        return {
            "id": self.id,
            "name": self.name,
            "base_price": cents_to_price(self.base_price_cents),
            "base_price_cents": self.base_price_cents,
            "type": self.type,
            "grade": self.grade,
            "commodity": self.commodity,
            "attributes": attributes_of(self).to_dict(),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StoreProduct(db.Model):
    """The fact that a product is sellable at a store, independent of stock."""
    __tablename__ = "store_products"

    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), primary_key=True)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), primary_key=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="store_products")
    store = db.relationship("Store", backref=db.backref("store_products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "store_id": self.store_id,
            "created_at": to_utc_z(self.created_at),
        }
