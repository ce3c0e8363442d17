# Overview: Invoice sequencer and store configuration row.

"""
Invoice numbers come from a single counter on the active StoreConfig row.

allocate() increments and reads the counter in one statement, so concurrent
callers always get distinct numbers. A number consumed by a sale attempt that
later rolls back is simply skipped: gaps are acceptable, duplicates are not.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..errors import ConfigurationMissing, ValidationError
from ..extensions import db
from ..models import StoreConfig
from ..time_utils import utcnow
from ..validation import coerce_decimal, coerce_int, coerce_str, require_fields
from .concurrency import atomic

INVOICE_NUMBER_PAD = 6


def format_invoice_number(prefix: str, number: int) -> str:
    return f"{prefix}{number:0{INVOICE_NUMBER_PAD}d}"


def get_active_store_config() -> StoreConfig:
    """Latest store configuration row, or ConfigurationMissing."""
    config = (
        db.session.query(StoreConfig)
        .order_by(StoreConfig.created_at.desc(), StoreConfig.id.desc())
        .first()
    )
    if config is None:
        raise ConfigurationMissing("Store configuration not found; seed one before selling")
    return config


def allocate(config: StoreConfig) -> str:
    """
    Atomically advance the invoice counter of ``config`` and return the
    formatted number.

    Uses UPDATE ... RETURNING where the dialect supports it. Elsewhere the
    UPDATE runs first and the read follows in the same transaction, while the
    row is still write-locked by that UPDATE.
    """
    stmt = (
        update(StoreConfig)
        .where(StoreConfig.id == config.id)
        .values(invoice_number=StoreConfig.invoice_number + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    if db.engine.dialect.update_returning:
        row = db.session.execute(
            stmt.returning(StoreConfig.invoice_prefix, StoreConfig.invoice_number)
        ).first()
        if row is None:
            raise ConfigurationMissing(f"Store configuration {config.id} not found")
        prefix, number = row
    else:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise ConfigurationMissing(f"Store configuration {config.id} not found")
        prefix, number = (
            db.session.query(StoreConfig.invoice_prefix, StoreConfig.invoice_number)
            .filter(StoreConfig.id == config.id)
            .one()
        )

    db.session.expire(config)
    return format_invoice_number(prefix, number)


def next_invoice_number() -> str:
    """Allocate one invoice number in its own transaction."""
    with atomic():
        config = get_active_store_config()
        return allocate(config)


def seed_store_config(
    *,
    name: str | None = None,
    invoice_prefix: str | None = None,
    tax_rate: Decimal | None = None,
    currency: str | None = None,
) -> tuple[StoreConfig, bool]:
    """
    Create the store configuration row if none exists.

    Returns (config, created). Defaults come from the app config.
    """
    with atomic():
        existing = (
            db.session.query(StoreConfig)
            .order_by(StoreConfig.created_at.desc(), StoreConfig.id.desc())
            .first()
        )
        if existing is not None:
            return existing, False

        app_config = current_app.config
        config = StoreConfig(
            name=name or app_config["SHOPFLOW_DEFAULT_STORE_NAME"],
            invoice_prefix=invoice_prefix if invoice_prefix is not None else app_config["SHOPFLOW_DEFAULT_INVOICE_PREFIX"],
            tax_rate=tax_rate if tax_rate is not None else Decimal(app_config["SHOPFLOW_DEFAULT_TAX_RATE"]),
            currency=currency or app_config["SHOPFLOW_DEFAULT_CURRENCY"],
            invoice_number=0,
        )
        db.session.add(config)
    return config, True


@dataclass(frozen=True)
class StoreConfigUpdate:
    """
    Partial update of the store configuration.

    None means "leave unchanged". The invoice counter is deliberately absent:
    it only moves through allocate().
    """
    name: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    tax_id: str | None = None
    currency: str | None = None
    tax_rate: Decimal | None = None
    low_stock_alert: int | None = None
    invoice_prefix: str | None = None

    def assignments(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_payload(cls, payload) -> "StoreConfigUpdate":
        payload = require_fields(payload)
        allowed = {f.name for f in fields(cls)}
        for key in payload:
            if key not in allowed:
                raise ValidationError(f"Field not allowed: {key}")
        return cls(
            name=coerce_str("name", payload.get("name"), max_length=120, allow_none=True),
            address=coerce_str("address", payload.get("address"), max_length=255, allow_none=True),
            phone=coerce_str("phone", payload.get("phone"), max_length=32, allow_none=True),
            email=coerce_str("email", payload.get("email"), max_length=255, allow_none=True),
            tax_id=coerce_str("tax_id", payload.get("tax_id"), max_length=64, allow_none=True),
            currency=coerce_str("currency", payload.get("currency"), max_length=8, allow_none=True),
            tax_rate=coerce_decimal("tax_rate", payload.get("tax_rate"), minimum=0, maximum=1, allow_none=True),
            low_stock_alert=coerce_int("low_stock_alert", payload.get("low_stock_alert"), minimum=0, allow_none=True),
            invoice_prefix=coerce_str("invoice_prefix", payload.get("invoice_prefix"), max_length=16, allow_none=True),
        )


def update_store_config(changes: StoreConfigUpdate) -> StoreConfig:
    values = changes.assignments()
    if not values:
        raise ValidationError("No fields to update")

    if "tax_rate" in values and not (Decimal("0") <= values["tax_rate"] <= Decimal("1")):
        raise ValidationError("tax_rate must be between 0 and 1")
    if "low_stock_alert" in values and values["low_stock_alert"] < 0:
        raise ValidationError("low_stock_alert must be >= 0")

    with atomic():
        config = get_active_store_config()
        config.name = values.get("name", config.name)
        config.address = values.get("address", config.address)
        config.phone = values.get("phone", config.phone)
        config.email = values.get("email", config.email)
        config.tax_id = values.get("tax_id", config.tax_id)
        config.currency = values.get("currency", config.currency)
        config.tax_rate = values.get("tax_rate", config.tax_rate)
        config.low_stock_alert = values.get("low_stock_alert", config.low_stock_alert)
        config.invoice_prefix = values.get("invoice_prefix", config.invoice_prefix)
        config.updated_at = utcnow()
    return config
