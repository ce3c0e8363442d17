"""
Sale lifecycle: create, cancel, refund.

LIFECYCLE:
    COMPLETED -> CANCELLED   (sale should never have settled)
    COMPLETED -> REFUNDED    (money returned to the customer)
Both targets are terminal. Creation and each transition run in one
transaction together with their stock movements, so a stock debit and its
status change commit together or not at all.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import update

from ..errors import (
    AlreadyCancelled,
    AlreadyRefunded,
    CustomerNotFound,
    InsufficientPayment,
    InsufficientStock,
    InvalidState,
    InvalidStateForRefund,
    ProductInactive,
    ProductNotFound,
    SaleNotFound,
    UserNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem, User
from ..models.sales import (
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_REFUNDED,
    SALE_STATUSES,
)
from ..money import ZERO, quantize_money
from ..time_utils import utcnow
from ..validation import (
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_str,
    require_fields,
)
from .concurrency import atomic, lock_for_update
from .invoice_service import allocate, get_active_store_config
from .stock_service import release, reserve

CASH_PAYMENT_METHODS = frozenset({"CASH"})

MAX_PAGE_SIZE = 100


# =============================================================================
# Requests
# =============================================================================

@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int
    price: Decimal
    discount: Decimal = ZERO

    @classmethod
    def from_payload(cls, payload, index: int) -> "SaleItemRequest":
        if not isinstance(payload, dict):
            raise ValidationError(f"items[{index}] must be an object")
        require_fields(payload, "product_id", "quantity", "price")
        return cls(
            product_id=coerce_int(f"items[{index}].product_id", payload["product_id"], minimum=1),
            quantity=coerce_int(f"items[{index}].quantity", payload["quantity"], minimum=1),
            price=coerce_decimal(f"items[{index}].price", payload["price"], minimum=0),
            discount=coerce_decimal(f"items[{index}].discount", payload.get("discount"), minimum=0, allow_none=True) or ZERO,
        )


@dataclass(frozen=True)
class SaleRequest:
    user_id: int
    items: tuple
    payment_method: str
    paid_amount: Decimal
    customer_id: int | None = None
    discount: Decimal = ZERO
    tax_rate_override: Decimal | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload) -> "SaleRequest":
        payload = require_fields(payload, "user_id", "items", "payment_method", "paid_amount")

        raw_items = payload["items"]
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")

        return cls(
            user_id=coerce_int("user_id", payload["user_id"], minimum=1),
            customer_id=coerce_int("customer_id", payload.get("customer_id"), minimum=1, allow_none=True),
            items=tuple(SaleItemRequest.from_payload(item, i) for i, item in enumerate(raw_items)),
            payment_method=coerce_str("payment_method", payload["payment_method"], max_length=32),
            paid_amount=coerce_decimal("paid_amount", payload["paid_amount"], minimum=0),
            discount=coerce_decimal("discount", payload.get("discount"), minimum=0, allow_none=True) or ZERO,
            tax_rate_override=coerce_decimal(
                "tax_rate_override", payload.get("tax_rate_override"), minimum=0, maximum=1, allow_none=True
            ),
            notes=coerce_str("notes", payload.get("notes"), allow_none=True),
        )

    def validate(self) -> None:
        if not self.items:
            raise ValidationError("A sale needs at least one item")
        for i, item in enumerate(self.items):
            if item.quantity <= 0:
                raise ValidationError(f"items[{i}].quantity must be > 0")
            if item.price < 0 or item.discount < 0:
                raise ValidationError(f"items[{i}] price and discount must be >= 0")
            if item.discount > item.price * item.quantity:
                raise ValidationError(f"items[{i}].discount cannot exceed the line amount")
        if not self.payment_method or not self.payment_method.strip():
            raise ValidationError("payment_method is required")
        if self.paid_amount < 0:
            raise ValidationError("paid_amount must be >= 0")
        if self.discount < 0:
            raise ValidationError("discount must be >= 0")
        if self.tax_rate_override is not None and not (0 <= self.tax_rate_override <= 1):
            raise ValidationError("tax_rate_override must be between 0 and 1")


# =============================================================================
# Totals
# =============================================================================

@dataclass(frozen=True)
class SaleTotals:
    item_subtotals: tuple
    subtotal: Decimal
    discount: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal


def compute_totals(items, discount: Decimal, tax_rate: Decimal) -> SaleTotals:
    """
    subtotal = sum(price * quantity - item discount)
    tax      = round((subtotal - discount) * tax_rate, 2)
    total    = (subtotal - discount) + tax
    """
    item_subtotals = tuple(
        quantize_money(Decimal(item.price) * item.quantity - Decimal(item.discount))
        for item in items
    )
    subtotal = quantize_money(sum(item_subtotals, ZERO))
    discount = quantize_money(discount)

    after_discount = subtotal - discount
    if after_discount < 0:
        raise ValidationError(
            "discount cannot exceed the sale subtotal",
            details={"subtotal": str(subtotal), "discount": str(discount)},
        )

    tax_rate = Decimal(tax_rate)
    tax = quantize_money(after_discount * tax_rate)
    return SaleTotals(
        item_subtotals=item_subtotals,
        subtotal=subtotal,
        discount=discount,
        tax_rate=tax_rate,
        tax=tax,
        total=after_discount + tax,
    )


# =============================================================================
# Create
# =============================================================================

def _check_products(items) -> dict[int, Product]:
    requested: OrderedDict[int, int] = OrderedDict()
    for item in items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    products: dict[int, Product] = {}
    for product_id, quantity in requested.items():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if not product.is_active:
            raise ProductInactive(f"Product {product.name} is not active", details={"product_id": product_id})
        if product.stock < quantity:
            raise InsufficientStock(
                f"Insufficient stock for product {product.name}. "
                f"Available: {product.stock}, requested: {quantity}",
                details={"product_id": product_id, "available": product.stock, "requested": quantity},
            )
        products[product_id] = product
    return products


def create_sale(request: SaleRequest) -> Sale:
    """
    Validate, price and persist a sale, then reserve its stock.

    Everything after request validation is one transaction. If anything
    fails the invoice number it consumed is skipped, never reissued.
    """
    request.validate()
    payment_method = request.payment_method.strip().upper()

    with atomic():
        _check_products(request.items)

        if request.customer_id is not None and db.session.get(Customer, request.customer_id) is None:
            raise CustomerNotFound(
                f"Customer {request.customer_id} not found",
                details={"customer_id": request.customer_id},
            )
        if db.session.get(User, request.user_id) is None:
            raise UserNotFound(f"User {request.user_id} not found", details={"user_id": request.user_id})

        config = get_active_store_config()
        tax_rate = request.tax_rate_override if request.tax_rate_override is not None else config.tax_rate
        totals = compute_totals(request.items, request.discount, tax_rate)

        paid_amount = quantize_money(request.paid_amount)
        if paid_amount < totals.total:
            raise InsufficientPayment(
                f"Paid amount ({paid_amount}) is less than the total ({totals.total})",
                details={"paid_amount": str(paid_amount), "total": str(totals.total)},
            )

        change = paid_amount - totals.total if payment_method in CASH_PAYMENT_METHODS else ZERO

        invoice_number = allocate(config)

        now = utcnow()
        sale = Sale(
            customer_id=request.customer_id,
            user_id=request.user_id,
            invoice_number=invoice_number,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax_rate=totals.tax_rate,
            tax=totals.tax,
            total=totals.total,
            payment_method=payment_method,
            paid_amount=paid_amount,
            change=change,
            status=SALE_STATUS_COMPLETED,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for item, item_subtotal in zip(request.items, totals.item_subtotals):
            db.session.add(
                SaleItem(
                    sale_id=sale.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=quantize_money(item.price),
                    discount=quantize_money(item.discount),
                    subtotal=item_subtotal,
                )
            )
            reserve(item.product_id, item.quantity)

        db.session.flush()

    return sale


# =============================================================================
# Cancel / refund
# =============================================================================

def _check_transition(status: str, target: str) -> None:
    if status == SALE_STATUS_COMPLETED:
        return

    if target == SALE_STATUS_CANCELLED:
        if status == SALE_STATUS_CANCELLED:
            raise AlreadyCancelled("Sale is already cancelled")
        if status == SALE_STATUS_REFUNDED:
            raise AlreadyRefunded("Cannot cancel a refunded sale")
        raise InvalidState(f"Cannot cancel a sale with status {status}")

    if status == SALE_STATUS_REFUNDED:
        raise AlreadyRefunded("Sale is already refunded")
    raise InvalidStateForRefund(
        f"Cannot refund a sale with status {status}. Only completed sales can be refunded."
    )


def _reverse_sale(sale_id: int, target: str) -> Sale:
    with atomic():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        _check_transition(sale.status, target)

        # Conditional flip: only one concurrent caller can move the sale out
        # of COMPLETED, so stock is released exactly once.
        result = db.session.execute(
            update(Sale)
            .where(Sale.id == sale_id, Sale.status == SALE_STATUS_COMPLETED)
            .values(status=target, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            current = db.session.query(Sale.status).filter(Sale.id == sale_id).scalar()
            _check_transition(current, target)
            raise InvalidState(f"Sale {sale_id} changed concurrently")

        for item in sale.items:
            release(item.product_id, item.quantity)

    return sale


def cancel_sale(sale_id: int) -> Sale:
    """COMPLETED -> CANCELLED, returning every item's quantity to stock."""
    return _reverse_sale(sale_id, SALE_STATUS_CANCELLED)


def refund_sale(sale_id: int) -> Sale:
    """COMPLETED -> REFUNDED, returning every item's quantity to stock."""
    return _reverse_sale(sale_id, SALE_STATUS_REFUNDED)


# =============================================================================
# Reads
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


@dataclass(frozen=True)
class SaleFilters:
    customer_id: int | None = None
    user_id: int | None = None
    status: str | None = None
    payment_method: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 20

    @classmethod
    def from_args(cls, args) -> "SaleFilters":
        status = args.get("status")
        if status is not None:
            status = status.strip().upper()
            if status not in SALE_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")
        payment_method = args.get("payment_method")
        return cls(
            customer_id=coerce_int("customer_id", args.get("customer_id"), minimum=1, allow_none=True),
            user_id=coerce_int("user_id", args.get("user_id"), minimum=1, allow_none=True),
            status=status,
            payment_method=payment_method.strip().upper() if payment_method else None,
            start_date=coerce_datetime("start_date", args.get("start_date")),
            end_date=coerce_datetime("end_date", args.get("end_date")),
            page=coerce_int("page", args.get("page", 1), minimum=1),
            limit=min(coerce_int("limit", args.get("limit", 20), minimum=1), MAX_PAGE_SIZE),
        )


def list_sales(filters: SaleFilters = SaleFilters()) -> tuple[list[Sale], dict]:
    """Newest first, paginated."""
    query = db.session.query(Sale)
    if filters.customer_id is not None:
        query = query.filter(Sale.customer_id == filters.customer_id)
    if filters.user_id is not None:
        query = query.filter(Sale.user_id == filters.user_id)
    if filters.status is not None:
        query = query.filter(Sale.status == filters.status)
    if filters.payment_method is not None:
        query = query.filter(Sale.payment_method == filters.payment_method)
    if filters.start_date is not None:
        query = query.filter(Sale.created_at >= filters.start_date)
    if filters.end_date is not None:
        query = query.filter(Sale.created_at <= filters.end_date)

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
        .all()
    )
    pagination = {
        "page": filters.page,
        "limit": filters.limit,
        "total": total,
        "total_pages": (total + filters.limit - 1) // filters.limit,
    }
    return sales, pagination
