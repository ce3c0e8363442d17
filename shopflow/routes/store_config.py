# Overview: Flask API routes for the store configuration and invoice counter.

from flask import Blueprint, request

from .. import engine
from ..errors import ShopflowError
from ..services import invoice_service
from . import error_response, ok, respond

store_config_bp = Blueprint("store_config", __name__, url_prefix="/api/store-config")


@store_config_bp.get("")
def get_store_config_route():
    try:
        config = invoice_service.get_active_store_config()
    except ShopflowError as e:
        return error_response(e)
    return ok(config.to_dict())


@store_config_bp.put("")
def update_store_config_route():
    """
    Update store details, tax rate or invoice prefix.

    The invoice counter is not writable here.
    """
    try:
        changes = invoice_service.StoreConfigUpdate.from_payload(request.get_json(silent=True))
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.update_store_config(changes))


@store_config_bp.post("/next-invoice-number")
def next_invoice_number_route():
    return respond(engine.allocate_invoice_number())
