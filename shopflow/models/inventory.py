from __future__ import annotations

from ..extensions import db
from ..money import format_money
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data and its on-hand quantity.

    STOCK: `stock` is only moved through stock_service (conditional
    single-statement updates). The check constraint backs the ledger's
    non-negativity guard at the storage level.

    LOCATION: `store_id` is the store the product currently sits at. A
    product has one location at a time; completing a transfer moves it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_active_stock", "is_active", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost = db.Column(db.Numeric(12, 2), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    # Advisory thresholds, never enforced by the ledger
    min_stock = db.Column(db.Integer, nullable=True)
    max_stock = db.Column(db.Integer, nullable=True)

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
        }

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "description": self.description,
            "price": format_money(self.price),
            "cost": format_money(self.cost),
            "stock": self.stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "store_id": self.store_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
