from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..money import format_rate
from ..time_utils import to_utc_z

POINTS_EARNED = "EARNED"
POINTS_REDEEMED = "REDEEMED"
POINTS_ADJUSTED = "ADJUSTED"

POINT_TRANSACTION_TYPES = (POINTS_EARNED, POINTS_REDEEMED, POINTS_ADJUSTED)


class LoyaltyConfig(db.Model):
    """
    Versioned loyalty policy.

    VERSIONING: rows are never edited. An update inserts a new active row and
    deactivates the others, so points awarded under an older policy stay
    explainable.
    """
    __tablename__ = "loyalty_configs"
    __table_args__ = (
        db.Index("ix_loyalty_configs_active_created", "is_active", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    points_per_dollar = db.Column(db.Numeric(10, 4), nullable=False, default=1)
    redemption_rate = db.Column(db.Numeric(10, 4), nullable=False, default=0.01)
    points_expire_months = db.Column(db.Integer, nullable=True)
    min_purchase_for_points = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_points_per_purchase = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "points_per_dollar": format_rate(self.points_per_dollar),
            "redemption_rate": format_rate(self.redemption_rate),
            "points_expire_months": self.points_expire_months,
            "min_purchase_for_points": format_rate(self.min_purchase_for_points),
            "max_points_per_purchase": self.max_points_per_purchase,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyPointTransaction(db.Model):
    """
    Append-only ledger of loyalty points.

    TYPES:
    - EARNED: points from a purchase (positive)
    - REDEEMED: points spent (negative)
    - ADJUSTED: manual correction (either sign)

    Balances are derived by summing rows; nothing stores a running counter.
    A sale earns points at most once; redemptions against a sale are not
    limited.
    """
    __tablename__ = "loyalty_point_transactions"
    __table_args__ = (
        db.Index(
            "uq_loyalty_points_sale_earned",
            "sale_id",
            unique=True,
            sqlite_where=text("type = 'EARNED'"),
            postgresql_where=text("type = 'EARNED'"),
        ),
        db.Index("ix_loyalty_points_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("loyalty_points", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "points": self.points,
            "description": self.description,
            "sale_id": self.sale_id,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "created_at": to_utc_z(self.created_at),
        }
