# shopflow/services/transfer_service.py
"""
Inventory transfers between store locations.

LIFECYCLE:
1. PENDING: transfer created; source stock checked, not reserved
2. IN_TRANSIT: shipped from source
3. COMPLETED: source stock decremented and product relocated (terminal)
4. CANCELLED: abandoned before completion, no stock change (terminal)

A product has a single location field, so completing a transfer moves the
whole product record to the destination store.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..errors import (
    CannotCancelCompleted,
    InsufficientStock,
    InvalidState,
    ProductNotFound,
    SameStore,
    StoreNotFound,
    TransferNotFound,
    UserNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import InventoryTransfer, Product, Store, User
from ..models.transfers import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUSES,
)
from ..time_utils import utcnow
from ..validation import coerce_int, coerce_str, require_fields
from .concurrency import atomic, lock_for_update
from .stock_service import relocate, reserve_at_location

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class TransferRequest:
    from_store_id: int
    to_store_id: int
    product_id: int
    quantity: int
    notes: str | None = None
    created_by_id: int | None = None

    @classmethod
    def from_payload(cls, payload) -> "TransferRequest":
        payload = require_fields(payload, "from_store_id", "to_store_id", "product_id", "quantity")
        return cls(
            from_store_id=coerce_int("from_store_id", payload["from_store_id"], minimum=1),
            to_store_id=coerce_int("to_store_id", payload["to_store_id"], minimum=1),
            product_id=coerce_int("product_id", payload["product_id"], minimum=1),
            quantity=coerce_int("quantity", payload["quantity"], minimum=1),
            notes=coerce_str("notes", payload.get("notes"), allow_none=True),
            created_by_id=coerce_int("created_by_id", payload.get("created_by_id"), minimum=1, allow_none=True),
        )


def _get_transfer_locked(transfer_id: int) -> InventoryTransfer:
    transfer = lock_for_update(db.session.query(InventoryTransfer).filter_by(id=transfer_id)).first()
    if transfer is None:
        raise TransferNotFound(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})
    return transfer


def _move(transfer_id: int, from_statuses: tuple, values: dict) -> bool:
    """Conditional status change; False when another caller moved it first."""
    result = db.session.execute(
        update(InventoryTransfer)
        .where(InventoryTransfer.id == transfer_id, InventoryTransfer.status.in_(from_statuses))
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def create_transfer(request: TransferRequest) -> InventoryTransfer:
    """
    Create a PENDING transfer.

    Raises:
        ValidationError: quantity is not positive
        SameStore: source and destination are the same store
        StoreNotFound, ProductNotFound, UserNotFound
        InsufficientStock: product stock is below the requested quantity
    """
    if request.quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if request.from_store_id == request.to_store_id:
        raise SameStore("Source and destination cannot be the same store")

    with atomic():
        for store_id in (request.from_store_id, request.to_store_id):
            if db.session.get(Store, store_id) is None:
                raise StoreNotFound(f"Store {store_id} not found", details={"store_id": store_id})

        product = db.session.get(Product, request.product_id)
        if product is None:
            raise ProductNotFound(
                f"Product {request.product_id} not found",
                details={"product_id": request.product_id},
            )
        if product.stock < request.quantity:
            raise InsufficientStock(
                f"Insufficient stock for product {product.name}. "
                f"Available: {product.stock}, requested: {request.quantity}",
                details={"product_id": product.id, "available": product.stock, "requested": request.quantity},
            )

        if request.created_by_id is not None and db.session.get(User, request.created_by_id) is None:
            raise UserNotFound(
                f"User {request.created_by_id} not found",
                details={"user_id": request.created_by_id},
            )

        transfer = InventoryTransfer(
            from_store_id=request.from_store_id,
            to_store_id=request.to_store_id,
            product_id=request.product_id,
            quantity=request.quantity,
            notes=request.notes,
            status=TRANSFER_STATUS_PENDING,
            created_by_id=request.created_by_id,
        )
        db.session.add(transfer)
        db.session.flush()

    return transfer


def ship_transfer(transfer_id: int) -> InventoryTransfer:
    """PENDING -> IN_TRANSIT."""
    with atomic():
        transfer = _get_transfer_locked(transfer_id)
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise InvalidState(f"Cannot ship transfer in {transfer.status} status")

        if not _move(transfer_id, (TRANSFER_STATUS_PENDING,), {"status": TRANSFER_STATUS_IN_TRANSIT}):
            raise InvalidState(f"Transfer {transfer_id} changed concurrently")

    return transfer


def complete_transfer(transfer_id: int) -> InventoryTransfer:
    """
    PENDING/IN_TRANSIT -> COMPLETED.

    Decrements the product's stock at the source store, relocates the product
    to the destination and stamps completed_at, all in one transaction.
    """
    with atomic():
        transfer = _get_transfer_locked(transfer_id)
        if transfer.status not in (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_IN_TRANSIT):
            raise InvalidState("Only pending or in-transit transfers can be completed")

        now = utcnow()
        if not _move(
            transfer_id,
            (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_IN_TRANSIT),
            {"status": TRANSFER_STATUS_COMPLETED, "completed_at": now},
        ):
            raise InvalidState(f"Transfer {transfer_id} changed concurrently")

        reserve_at_location(transfer.product_id, transfer.quantity, transfer.from_store_id)
        relocate(transfer.product_id, transfer.to_store_id)

    return transfer


def cancel_transfer(transfer_id: int) -> InventoryTransfer:
    """
    Cancel a transfer that has not completed. No stock moves, since creation
    reserved nothing.
    """
    with atomic():
        transfer = _get_transfer_locked(transfer_id)
        if transfer.status == TRANSFER_STATUS_COMPLETED:
            raise CannotCancelCompleted("Cannot cancel a completed transfer")
        if transfer.status == TRANSFER_STATUS_CANCELLED:
            raise InvalidState("Transfer is already cancelled")

        if not _move(
            transfer_id,
            (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_IN_TRANSIT),
            {"status": TRANSFER_STATUS_CANCELLED},
        ):
            current = db.session.query(InventoryTransfer.status).filter_by(id=transfer_id).scalar()
            if current == TRANSFER_STATUS_COMPLETED:
                raise CannotCancelCompleted("Cannot cancel a completed transfer")
            raise InvalidState(f"Transfer {transfer_id} changed concurrently")

    return transfer


def get_transfer(transfer_id: int) -> InventoryTransfer:
    transfer = db.session.get(InventoryTransfer, transfer_id)
    if transfer is None:
        raise TransferNotFound(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})
    return transfer


@dataclass(frozen=True)
class TransferFilters:
    from_store_id: int | None = None
    to_store_id: int | None = None
    product_id: int | None = None
    status: str | None = None
    page: int = 1
    limit: int = 20

    @classmethod
    def from_args(cls, args) -> "TransferFilters":
        status = args.get("status")
        if status is not None:
            status = status.strip().upper()
            if status not in TRANSFER_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(TRANSFER_STATUSES)}")
        return cls(
            from_store_id=coerce_int("from_store_id", args.get("from_store_id"), minimum=1, allow_none=True),
            to_store_id=coerce_int("to_store_id", args.get("to_store_id"), minimum=1, allow_none=True),
            product_id=coerce_int("product_id", args.get("product_id"), minimum=1, allow_none=True),
            status=status,
            page=coerce_int("page", args.get("page", 1), minimum=1),
            limit=min(coerce_int("limit", args.get("limit", 20), minimum=1), MAX_PAGE_SIZE),
        )


def list_transfers(filters: TransferFilters = TransferFilters()) -> tuple[list[InventoryTransfer], dict]:
    query = db.session.query(InventoryTransfer)
    if filters.from_store_id is not None:
        query = query.filter(InventoryTransfer.from_store_id == filters.from_store_id)
    if filters.to_store_id is not None:
        query = query.filter(InventoryTransfer.to_store_id == filters.to_store_id)
    if filters.product_id is not None:
        query = query.filter(InventoryTransfer.product_id == filters.product_id)
    if filters.status is not None:
        query = query.filter(InventoryTransfer.status == filters.status)

    total = query.count()
    transfers = (
        query.order_by(InventoryTransfer.created_at.desc(), InventoryTransfer.id.desc())
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
    return transfers, pagination
