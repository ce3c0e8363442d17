"""
Loyalty points: policy versioning, the points calculator and the points
ledger.

award() is pure. Recording an award, redeeming and adjusting only ever append
LoyaltyPointTransaction rows; balances are derived by summation.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConfigurationMissing,
    CustomerNotFound,
    DuplicateAward,
    InsufficientPoints,
    SaleNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, LoyaltyConfig, LoyaltyPointTransaction, Sale
from ..models.loyalty import POINTS_ADJUSTED, POINTS_EARNED, POINTS_REDEEMED
from ..money import quantize_money
from ..time_utils import add_months, utcnow
from ..validation import coerce_decimal, coerce_int, require_fields
from .concurrency import atomic

EXPIRING_SOON_WINDOW = timedelta(days=30)

# Base policy used when the first version is written
DEFAULT_POLICY = {
    "points_per_dollar": Decimal("1.0"),
    "redemption_rate": Decimal("0.01"),
    "points_expire_months": None,
    "min_purchase_for_points": Decimal("0"),
    "max_points_per_purchase": None,
}


@dataclass(frozen=True)
class LoyaltyAward:
    points: int
    expires_at: datetime | None = None


def award(purchase_amount: Decimal, config: LoyaltyConfig, now: datetime | None = None) -> LoyaltyAward:
    """
    Points earned for a purchase under ``config``.

    1. Below min_purchase_for_points -> 0
    2. floor(purchase_amount * points_per_dollar)
    3. Clamped to max_points_per_purchase when set
    4. expires_at = now + points_expire_months when set
    """
    amount = Decimal(purchase_amount)
    if amount < Decimal(config.min_purchase_for_points or 0):
        return LoyaltyAward(points=0)

    points = int((amount * Decimal(config.points_per_dollar)).to_integral_value(rounding=ROUND_FLOOR))

    if config.max_points_per_purchase is not None and points > config.max_points_per_purchase:
        points = config.max_points_per_purchase

    if points <= 0:
        return LoyaltyAward(points=0)

    expires_at = None
    if config.points_expire_months:
        expires_at = add_months(now or utcnow(), config.points_expire_months)

    return LoyaltyAward(points=points, expires_at=expires_at)


# =============================================================================
# Policy
# =============================================================================

def get_active_loyalty_config() -> LoyaltyConfig:
    config = (
        db.session.query(LoyaltyConfig)
        .filter(LoyaltyConfig.is_active.is_(True))
        .order_by(LoyaltyConfig.created_at.desc(), LoyaltyConfig.id.desc())
        .first()
    )
    if config is None:
        raise ConfigurationMissing("No active loyalty configuration")
    return config


@dataclass(frozen=True)
class LoyaltyConfigUpdate:
    """Fields for the next policy version; None keeps the current value."""
    points_per_dollar: Decimal | None = None
    redemption_rate: Decimal | None = None
    points_expire_months: int | None = None
    min_purchase_for_points: Decimal | None = None
    max_points_per_purchase: int | None = None

    def assignments(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_payload(cls, payload) -> "LoyaltyConfigUpdate":
        payload = require_fields(payload)
        allowed = {f.name for f in fields(cls)}
        for key in payload:
            if key not in allowed:
                raise ValidationError(f"Field not allowed: {key}")
        return cls(
            points_per_dollar=coerce_decimal("points_per_dollar", payload.get("points_per_dollar"), minimum=0, allow_none=True),
            redemption_rate=coerce_decimal("redemption_rate", payload.get("redemption_rate"), minimum=0, allow_none=True),
            points_expire_months=coerce_int("points_expire_months", payload.get("points_expire_months"), minimum=1, allow_none=True),
            min_purchase_for_points=coerce_decimal(
                "min_purchase_for_points", payload.get("min_purchase_for_points"), minimum=0, allow_none=True
            ),
            max_points_per_purchase=coerce_int(
                "max_points_per_purchase", payload.get("max_points_per_purchase"), minimum=1, allow_none=True
            ),
        )


def update_loyalty_config(changes: LoyaltyConfigUpdate) -> LoyaltyConfig:
    """Append a new active policy version and deactivate the previous ones."""
    values = changes.assignments()
    for key in ("points_per_dollar", "redemption_rate", "min_purchase_for_points"):
        if key in values and values[key] < 0:
            raise ValidationError(f"{key} must be >= 0")
    for key in ("points_expire_months", "max_points_per_purchase"):
        if key in values and values[key] <= 0:
            raise ValidationError(f"{key} must be > 0")

    with atomic():
        current = (
            db.session.query(LoyaltyConfig)
            .filter(LoyaltyConfig.is_active.is_(True))
            .order_by(LoyaltyConfig.created_at.desc(), LoyaltyConfig.id.desc())
            .first()
        )
        if current is not None:
            base = {
                "points_per_dollar": current.points_per_dollar,
                "redemption_rate": current.redemption_rate,
                "points_expire_months": current.points_expire_months,
                "min_purchase_for_points": current.min_purchase_for_points,
                "max_points_per_purchase": current.max_points_per_purchase,
            }
        else:
            base = dict(DEFAULT_POLICY)
        base.update(values)

        config = LoyaltyConfig(is_active=True, **base)
        db.session.add(config)
        db.session.flush()

        db.session.execute(
            update(LoyaltyConfig)
            .where(LoyaltyConfig.id != config.id, LoyaltyConfig.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
    return config


# =============================================================================
# Ledger
# =============================================================================

def _get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def record_award(customer_id: int, purchase_amount: Decimal, sale_id: int) -> dict:
    """
    Credit EARNED points for a sale under the active policy.

    A sale earns points once; a second call fails with DuplicateAward. Awards
    that compute to zero points write nothing.
    """
    if purchase_amount < 0:
        raise ValidationError("purchase_amount must be >= 0")

    with atomic():
        _get_customer(customer_id)
        if db.session.get(Sale, sale_id) is None:
            raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        config = get_active_loyalty_config()

        existing = (
            db.session.query(LoyaltyPointTransaction.id)
            .filter_by(sale_id=sale_id, type=POINTS_EARNED)
            .first()
        )
        if existing is not None:
            raise DuplicateAward(
                f"Points were already awarded for sale {sale_id}",
                details={"sale_id": sale_id},
            )

        result = award(purchase_amount, config)
        if result.points == 0:
            return {"points_awarded": 0}

        entry = LoyaltyPointTransaction(
            customer_id=customer_id,
            type=POINTS_EARNED,
            points=result.points,
            description=f"Points earned from purchase #{sale_id}",
            sale_id=sale_id,
            expires_at=result.expires_at,
        )
        db.session.add(entry)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DuplicateAward(
                f"Points were already awarded for sale {sale_id}",
                details={"sale_id": sale_id},
            ) from exc

    return {"points_awarded": result.points}


def get_points_balance(customer_id: int, now: datetime | None = None) -> dict:
    """
    Derive the customer's balance from the ledger.

    Expired entries are ignored. available_points excludes redemptions,
    expiring_soon counts non-redeemed points that expire within 30 days.
    """
    customer = _get_customer(customer_id)
    now = now or utcnow()
    soon = now + EXPIRING_SOON_WINDOW

    entries = (
        db.session.query(LoyaltyPointTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(LoyaltyPointTransaction.created_at.desc(), LoyaltyPointTransaction.id.desc())
        .all()
    )

    total_points = 0
    available_points = 0
    expiring_soon = 0
    last_activity = None

    for entry in entries:
        if last_activity is None or entry.created_at > last_activity:
            last_activity = entry.created_at

        if entry.expires_at is not None and entry.expires_at < now:
            continue

        total_points += entry.points
        if entry.type != POINTS_REDEEMED:
            available_points += entry.points
            if entry.expires_at is not None and entry.expires_at <= soon:
                expiring_soon += entry.points

    return {
        "customer_id": customer.id,
        "customer_name": customer.name,
        "total_points": max(0, total_points),
        "available_points": max(0, available_points),
        "expiring_soon": max(0, expiring_soon),
        "last_activity": last_activity,
    }


def _claim_customer(customer_id: int) -> None:
    """
    Take the customer's row write lock for the rest of the transaction.

    Redemptions for one customer serialize on this update, so the balance
    read that follows cannot be spent twice. A plain UPDATE works on SQLite,
    where SELECT ... FOR UPDATE is ignored.
    """
    result = db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})


def redeem_points(customer_id: int, points: int, sale_id: int | None = None) -> dict:
    """
    Spend points. The spendable balance is the live (unexpired) total,
    redemptions included.
    """
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError("points must be a positive integer")

    with atomic():
        _claim_customer(customer_id)
        config = get_active_loyalty_config()
        balance = get_points_balance(customer_id)
        if balance["total_points"] < points:
            raise InsufficientPoints(
                f"Customer {customer_id} has {balance['total_points']} points, {points} requested",
                details={"available": balance["total_points"], "requested": points},
            )

        if sale_id is not None and db.session.get(Sale, sale_id) is None:
            raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        db.session.add(
            LoyaltyPointTransaction(
                customer_id=customer_id,
                type=POINTS_REDEEMED,
                points=-points,
                description=f"Redeemed {points} points" + (f" on sale #{sale_id}" if sale_id else ""),
                sale_id=sale_id,
            )
        )
        value = quantize_money(Decimal(points) * Decimal(config.redemption_rate))

    return {"points_redeemed": points, "value": value}


def adjust_points(customer_id: int, points: int, description: str) -> LoyaltyPointTransaction:
    if isinstance(points, bool) or not isinstance(points, int) or points == 0:
        raise ValidationError("points must be a non-zero integer")
    if not description or not description.strip():
        raise ValidationError("description is required for adjustments")

    with atomic():
        _get_customer(customer_id)
        entry = LoyaltyPointTransaction(
            customer_id=customer_id,
            type=POINTS_ADJUSTED,
            points=points,
            description=description.strip()[:255],
        )
        db.session.add(entry)
    return entry
