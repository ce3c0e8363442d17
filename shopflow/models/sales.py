from __future__ import annotations

from ..extensions import db
from ..money import format_money, format_rate
from ..time_utils import to_utc_z

SALE_STATUS_COMPLETED = "COMPLETED"
SALE_STATUS_CANCELLED = "CANCELLED"
SALE_STATUS_REFUNDED = "REFUNDED"

SALE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_CANCELLED, SALE_STATUS_REFUNDED)


class Sale(db.Model):
    """
    Sale header: totals, payment and lifecycle status.

    LIFECYCLE: created COMPLETED; moves once to CANCELLED or REFUNDED and
    stays there. Rows are never deleted (audit trail).

    TOTALS: total = (subtotal - discount) + tax, with
    tax = round((subtotal - discount) * tax_rate, 2). tax_rate keeps the
    effective rate used so the invariant can be checked later.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        db.CheckConstraint("paid_amount >= total", name="ck_sales_paid_covers_total"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False)
    change = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    user = db.relationship("User", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} invoice={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "invoice_number": self.invoice_number,
            "subtotal": format_money(self.subtotal),
            "discount": format_money(self.discount),
            "tax_rate": format_rate(self.tax_rate),
            "tax": format_money(self.tax),
            "total": format_money(self.total),
            "payment_method": self.payment_method,
            "paid_amount": format_money(self.paid_amount),
            "change": format_money(self.change),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["customer"] = self.customer.to_summary() if self.customer else None
            data["user"] = self.user.to_summary() if self.user else None
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line item owned by exactly one sale. Immutable once written."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    # Unit price snapshot at sale time
    price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": format_money(self.price),
            "discount": format_money(self.discount),
            "subtotal": format_money(self.subtotal),
            "product": self.product.to_summary() if self.product else None,
        }
