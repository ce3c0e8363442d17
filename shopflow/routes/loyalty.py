# Overview: Flask API routes for loyalty policy and customer points.

from flask import Blueprint, request

from .. import engine
from ..errors import ShopflowError
from ..services import loyalty_service
from ..time_utils import to_utc_z
from ..validation import coerce_decimal, coerce_int, require_fields
from . import error_response, ok, respond

loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("/config")
def get_loyalty_config_route():
    try:
        config = loyalty_service.get_active_loyalty_config()
    except ShopflowError as e:
        return error_response(e)
    return ok(config.to_dict())


@loyalty_bp.put("/config")
def update_loyalty_config_route():
    """
    Write a new loyalty policy version.

    Omitted or null fields keep the current value.
    """
    try:
        changes = loyalty_service.LoyaltyConfigUpdate.from_payload(request.get_json(silent=True))
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.update_loyalty_config(changes))


@loyalty_bp.get("/points/<int:customer_id>")
def get_points_route(customer_id: int):
    try:
        balance = loyalty_service.get_points_balance(customer_id)
    except ShopflowError as e:
        return error_response(e)

    balance["last_activity"] = to_utc_z(balance["last_activity"])
    return ok(balance)


@loyalty_bp.post("/points/award")
def award_points_route():
    """
    Request body:
    {
        "customer_id": int,
        "purchase_amount": number,
        "sale_id": int
    }
    """
    try:
        payload = require_fields(request.get_json(silent=True), "customer_id", "purchase_amount", "sale_id")
        customer_id = coerce_int("customer_id", payload["customer_id"], minimum=1)
        purchase_amount = coerce_decimal("purchase_amount", payload["purchase_amount"], minimum=0)
        sale_id = coerce_int("sale_id", payload["sale_id"], minimum=1)
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.award_loyalty_points(customer_id, purchase_amount, sale_id))


@loyalty_bp.post("/points/redeem")
def redeem_points_route():
    try:
        payload = require_fields(request.get_json(silent=True), "customer_id", "points")
        customer_id = coerce_int("customer_id", payload["customer_id"], minimum=1)
        points = coerce_int("points", payload["points"], minimum=1)
        sale_id = coerce_int("sale_id", payload.get("sale_id"), minimum=1, allow_none=True)
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.redeem_loyalty_points(customer_id, points, sale_id=sale_id))
