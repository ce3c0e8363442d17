# Overview: Flask API routes for product stock queries and manual stock counts.

from flask import Blueprint, request

from .. import engine
from ..errors import ShopflowError
from ..services import stock_service
from ..validation import coerce_int
from . import error_response, ok, respond

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/low-stock")
def low_stock_route():
    """
    Active products at or below their reorder level.

    Query params:
        threshold: int (optional) - compare against this instead of min_stock
    """
    try:
        threshold = coerce_int("threshold", request.args.get("threshold"), minimum=0, allow_none=True)
        products = stock_service.list_low_stock(threshold)
    except ShopflowError as e:
        return error_response(e)

    return ok({"products": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/<int:product_id>/stock")
def product_stock_route(product_id: int):
    try:
        stock = stock_service.get_stock(product_id)
    except ShopflowError as e:
        return error_response(e)

    return ok({"product_id": product_id, "stock": stock})


@products_bp.put("/<int:product_id>/inventory")
def adjust_inventory_route(product_id: int):
    """
    Set on-hand stock after a physical count.

    Body:
        stock: int >= 0 (required)
        min_stock: int >= 0 (optional)
    """
    try:
        adjustment = stock_service.StockAdjustment.from_payload(request.get_json(silent=True))
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.adjust_stock(product_id, adjustment))
