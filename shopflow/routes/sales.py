# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, current_app, request

from .. import engine
from ..errors import InternalError, ShopflowError
from ..services import sales_service
from . import error_response, ok, respond

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "customer_id": int (optional),
        "user_id": int,
        "items": [{"product_id": int, "quantity": int, "price": number, "discount": number?}],
        "payment_method": str,
        "paid_amount": number,
        "discount": number (optional),
        "tax_rate_override": number (optional),
        "notes": str (optional)
    }

    Returns:
        201: Sale created with totals, invoice number and items
        400: Invalid request
        404: Product, customer or user not found
        409: Inactive product, insufficient stock or insufficient payment
    """
    try:
        sale_request = sales_service.SaleRequest.from_payload(request.get_json(silent=True))
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.create_sale(sale_request), success_status=201)


@sales_bp.get("")
def list_sales_route():
    try:
        filters = sales_service.SaleFilters.from_args(request.args)
        sales, pagination = sales_service.list_sales(filters)
    except ShopflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return error_response(InternalError("Failed to list sales"))

    return ok({"sales": [sale.to_dict() for sale in sales], "pagination": pagination})


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except ShopflowError as e:
        return error_response(e)

    return ok(sale.to_dict())


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    """Cancel a completed sale and return its items to stock."""
    return respond(engine.cancel_sale(sale_id))


@sales_bp.post("/<int:sale_id>/refund")
def refund_sale_route(sale_id: int):
    """Refund a completed sale and return its items to stock."""
    return respond(engine.refund_sale(sale_id))
