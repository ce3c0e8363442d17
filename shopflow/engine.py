# Overview: Engine boundary; runs service operations and reports structured results.

"""
Public entry points of the sale/inventory engine.

Services raise typed errors (shopflow.errors). Callers of this module never
see an exception for business outcomes: each function returns an
OperationResult with either ``data`` or a typed ``error``. Unexpected
storage failures are logged and reported as INTERNAL_ERROR.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .errors import InternalError, ShopflowError
from .services import invoice_service, loyalty_service, sales_service, stock_service, transfer_service


@dataclass(frozen=True)
class OperationResult:
    success: bool
    data: Any = None
    error: ShopflowError | None = None

    @property
    def status_code(self) -> int:
        return 200 if self.success else self.error.status_code

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error.to_dict()}


def operation(name: str):
    """Convert a service call into an OperationResult."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs) -> OperationResult:
            try:
                data = func(*args, **kwargs)
            except ShopflowError as exc:
                current_app.logger.info("%s rejected: %s (%s)", name, exc.kind, exc.message)
                return OperationResult(success=False, error=exc)
            except SQLAlchemyError:
                current_app.logger.exception("%s failed with a storage error", name)
                return OperationResult(
                    success=False,
                    error=InternalError(f"{name} failed due to a storage error"),
                )
            current_app.logger.info("%s succeeded", name)
            return OperationResult(success=True, data=data)
        return wrapper
    return decorator


# =============================================================================
# Sales
# =============================================================================

@operation("create_sale")
def create_sale(request: sales_service.SaleRequest) -> dict:
    sale = sales_service.create_sale(request)
    current_app.logger.info("sale %s created: invoice=%s total=%s", sale.id, sale.invoice_number, sale.total)
    return sale.to_dict()


@operation("cancel_sale")
def cancel_sale(sale_id: int) -> dict:
    sale = sales_service.cancel_sale(sale_id)
    current_app.logger.info("sale %s cancelled: invoice=%s", sale.id, sale.invoice_number)
    return sale.to_dict()


@operation("refund_sale")
def refund_sale(sale_id: int) -> dict:
    sale = sales_service.refund_sale(sale_id)
    current_app.logger.info("sale %s refunded: invoice=%s total=%s", sale.id, sale.invoice_number, sale.total)
    return sale.to_dict()


# =============================================================================
# Loyalty
# =============================================================================

@operation("award_loyalty_points")
def award_loyalty_points(customer_id: int, purchase_amount, sale_id: int) -> dict:
    return loyalty_service.record_award(customer_id, purchase_amount, sale_id)


@operation("redeem_loyalty_points")
def redeem_loyalty_points(customer_id: int, points: int, sale_id: int | None = None) -> dict:
    result = loyalty_service.redeem_points(customer_id, points, sale_id=sale_id)
    return {"points_redeemed": result["points_redeemed"], "value": str(result["value"])}


@operation("update_loyalty_config")
def update_loyalty_config(changes: loyalty_service.LoyaltyConfigUpdate) -> dict:
    return loyalty_service.update_loyalty_config(changes).to_dict()


# =============================================================================
# Transfers
# =============================================================================

@operation("create_transfer")
def create_transfer(request: transfer_service.TransferRequest) -> dict:
    return transfer_service.create_transfer(request).to_dict()


@operation("ship_transfer")
def ship_transfer(transfer_id: int) -> dict:
    return transfer_service.ship_transfer(transfer_id).to_dict()


@operation("complete_transfer")
def complete_transfer(transfer_id: int) -> dict:
    transfer = transfer_service.complete_transfer(transfer_id)
    current_app.logger.info(
        "transfer %s completed: product=%s qty=%s store %s -> %s",
        transfer.id, transfer.product_id, transfer.quantity, transfer.from_store_id, transfer.to_store_id,
    )
    return transfer.to_dict()


@operation("cancel_transfer")
def cancel_transfer(transfer_id: int) -> dict:
    return transfer_service.cancel_transfer(transfer_id).to_dict()


# =============================================================================
# Store configuration
# =============================================================================

@operation("allocate_invoice_number")
def allocate_invoice_number() -> dict:
    return {"invoice_number": invoice_service.next_invoice_number()}


@operation("update_store_config")
def update_store_config(changes: invoice_service.StoreConfigUpdate) -> dict:
    return invoice_service.update_store_config(changes).to_dict()


# =============================================================================
# Inventory
# =============================================================================

@operation("adjust_stock")
def adjust_stock(product_id: int, adjustment: stock_service.StockAdjustment) -> dict:
    product = stock_service.set_stock(product_id, adjustment)
    current_app.logger.info("product %s stock set to %s", product.id, product.stock)
    return product.to_dict()
