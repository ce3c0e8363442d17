from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"
TRANSFER_STATUS_COMPLETED = "COMPLETED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_CANCELLED,
)


class InventoryTransfer(db.Model):
    """
    Movement of one product between two store locations.

    LIFECYCLE:
    1. PENDING: created, source stock checked but not reserved
    2. IN_TRANSIT: shipped from source
    3. COMPLETED: source stock decremented, product relocated (terminal)
    4. CANCELLED: abandoned before completion, no stock effect (terminal)
    """
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        db.CheckConstraint("from_store_id <> to_store_id", name="ck_inventory_transfers_distinct_stores"),
        db.CheckConstraint("quantity > 0", name="ck_inventory_transfers_quantity_positive"),
        db.Index("ix_inventory_transfers_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    from_store = db.relationship("Store", foreign_keys=[from_store_id])
    to_store = db.relationship("Store", foreign_keys=[to_store_id])
    product = db.relationship("Product")
    created_by = db.relationship("User")

    def __repr__(self) -> str:
        return f"<InventoryTransfer id={self.id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_store_id": self.from_store_id,
            "to_store_id": self.to_store_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "notes": self.notes,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
