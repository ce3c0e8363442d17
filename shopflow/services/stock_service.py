"""
Stock ledger: atomic reserve/release over Product.stock.

Every movement is a single conditional UPDATE so two concurrent sales of the
same product cannot both pass a read-then-write check. Nothing here commits;
callers run these inside the transaction of the status change they belong to
(see concurrency.atomic). set_stock is the exception: a manual count is its
own transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_, update

from ..errors import InsufficientStock, ProductNotAtSource, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Product
from ..time_utils import utcnow
from ..validation import coerce_int, require_fields
from .concurrency import atomic


def _require_positive(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})


def _execute(product_id: int, stmt) -> int:
    """Run a bulk UPDATE and expire the cached Product so later reads see it."""
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    cached = db.session.identity_map.get(db.session.identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached)
    return result.rowcount


def reserve(product_id: int, quantity: int) -> None:
    """
    Decrement stock by ``quantity`` only if the result stays >= 0.

    Raises:
        ProductNotFound: product does not exist
        InsufficientStock: on-hand quantity is lower than ``quantity``
    """
    _require_positive(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utcnow())
    )
    if _execute(product_id, stmt):
        return

    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    raise InsufficientStock(
        f"Insufficient stock for product {product.name}. "
        f"Available: {product.stock}, requested: {quantity}",
        details={"product_id": product_id, "available": product.stock, "requested": quantity},
    )


def release(product_id: int, quantity: int) -> None:
    """
    Increment stock by ``quantity``. Releases restore an earlier reservation
    and are never rejected for business reasons.
    """
    _require_positive(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, updated_at=utcnow())
    )
    if not _execute(product_id, stmt):
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})


def reserve_at_location(product_id: int, quantity: int, store_id: int) -> None:
    """
    Decrement stock for a product held at ``store_id``.

    A product with no location (store_id NULL) counts as held anywhere.

    Raises:
        ProductNotFound, ProductNotAtSource, InsufficientStock
    """
    _require_positive(quantity)

    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            or_(Product.store_id.is_(None), Product.store_id == store_id),
            Product.stock >= quantity,
        )
        .values(stock=Product.stock - quantity, updated_at=utcnow())
    )
    if _execute(product_id, stmt):
        return

    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    if product.store_id is not None and product.store_id != store_id:
        raise ProductNotAtSource(
            f"Product {product.name} is not located at store {store_id}",
            details={"product_id": product_id, "store_id": product.store_id, "expected_store_id": store_id},
        )
    raise InsufficientStock(
        f"Insufficient stock for product {product.name}. "
        f"Available: {product.stock}, requested: {quantity}",
        details={"product_id": product_id, "available": product.stock, "requested": quantity},
    )


def relocate(product_id: int, store_id: int) -> None:
    """Move a product's single location field to ``store_id``."""
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(store_id=store_id, updated_at=utcnow())
    )
    if not _execute(product_id, stmt):
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})


def get_stock(product_id: int) -> int:
    stock = db.session.query(Product.stock).filter(Product.id == product_id).scalar()
    if stock is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return stock


def list_low_stock(threshold: int | None = None) -> list[Product]:
    """
    Active products at or below their reorder point.

    Without ``threshold`` each product is compared with its own min_stock
    (missing min_stock counts as 0). Thresholds are advisory only.
    """
    query = db.session.query(Product).filter(Product.is_active.is_(True))
    if threshold is None:
        query = query.filter(Product.stock <= db.func.coalesce(Product.min_stock, 0))
    else:
        if threshold < 0:
            raise ValidationError("threshold must be >= 0")
        query = query.filter(Product.stock <= threshold)
    return query.order_by(Product.stock.asc(), Product.name.asc()).all()


@dataclass(frozen=True)
class StockAdjustment:
    """Manual inventory count: absolute on-hand stock, optional reorder point."""
    stock: int
    min_stock: int | None = None

    @classmethod
    def from_payload(cls, payload) -> "StockAdjustment":
        payload = require_fields(payload, "stock")
        for key in payload:
            if key not in ("stock", "min_stock"):
                raise ValidationError(f"Field not allowed: {key}")
        return cls(
            stock=coerce_int("stock", payload.get("stock"), minimum=0),
            min_stock=coerce_int("min_stock", payload.get("min_stock"), minimum=0, allow_none=True),
        )


def set_stock(product_id: int, adjustment: StockAdjustment) -> Product:
    """
    Overwrite on-hand stock after a physical count.

    min_stock is only touched when given. Unlike reserve/release this commits.

    Raises:
        ValidationError: negative stock or min_stock
        ProductNotFound: product does not exist
    """
    if isinstance(adjustment.stock, bool) or not isinstance(adjustment.stock, int) or adjustment.stock < 0:
        raise ValidationError("stock must be a non-negative integer", details={"stock": adjustment.stock})
    values = {"stock": adjustment.stock, "updated_at": utcnow()}
    if adjustment.min_stock is not None:
        if adjustment.min_stock < 0:
            raise ValidationError("min_stock must be >= 0", details={"min_stock": adjustment.min_stock})
        values["min_stock"] = adjustment.min_stock

    with atomic():
        stmt = update(Product).where(Product.id == product_id).values(**values)
        if not _execute(product_id, stmt):
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        product = db.session.get(Product, product_id)
    return product
