from __future__ import annotations

from ..extensions import db
from ..money import format_rate
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    Store location.

    Products carry a single nullable store location (products.store_id);
    inventory transfers move a product from one store to another.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stores_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    address = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StoreConfig(db.Model):
    """
    Store-wide configuration row holding the tax rate and the invoice counter.

    The most recently created row is the active one. invoice_number is the
    last number handed out; it only ever moves forward (see
    invoice_service.allocate) and is never written through the partial
    update path.
    """
    __tablename__ = "store_configs"
    __table_args__ = (
        db.CheckConstraint("invoice_number >= 0", name="ck_store_configs_invoice_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, default="My Store")
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    tax_id = db.Column(db.String(64), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    # Flat rate as a fraction (0.1 = 10%)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=False, default=10)

    invoice_prefix = db.Column(db.String(16), nullable=False, default="INV-")
    invoice_number = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<StoreConfig id={self.id} prefix={self.invoice_prefix!r} counter={self.invoice_number}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "tax_id": self.tax_id,
            "currency": self.currency,
            "tax_rate": format_rate(self.tax_rate),
            "low_stock_alert": self.low_stock_alert,
            "invoice_prefix": self.invoice_prefix,
            "invoice_number": self.invoice_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
