# shopflow/routes/transfers.py
"""
Inventory transfer API routes.
"""
from flask import Blueprint, current_app, request

from .. import engine
from ..errors import InternalError, ShopflowError
from ..services import transfer_service
from . import error_response, ok, respond


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/inventory-transfers")


@transfers_bp.route("", methods=["POST"])
def create_transfer():
    """
    Create a PENDING transfer.

    Request body:
    {
        "from_store_id": int,
        "to_store_id": int,
        "product_id": int,
        "quantity": int,
        "notes": str (optional),
        "created_by_id": int (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        404: Store or product not found
        409: Same store or insufficient stock
    """
    try:
        transfer_request = transfer_service.TransferRequest.from_payload(request.get_json(silent=True))
    except ShopflowError as e:
        return error_response(e)

    return respond(engine.create_transfer(transfer_request), success_status=201)


@transfers_bp.route("", methods=["GET"])
def list_transfers():
    try:
        filters = transfer_service.TransferFilters.from_args(request.args)
        transfers, pagination = transfer_service.list_transfers(filters)
    except ShopflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return error_response(InternalError("Failed to list transfers"))

    return ok({"transfers": [t.to_dict() for t in transfers], "pagination": pagination})


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id)
    except ShopflowError as e:
        return error_response(e)

    return ok(transfer.to_dict())


@transfers_bp.route("/<int:transfer_id>/ship", methods=["POST"])
def ship_transfer(transfer_id: int):
    return respond(engine.ship_transfer(transfer_id))


@transfers_bp.route("/<int:transfer_id>/complete", methods=["POST"])
def complete_transfer(transfer_id: int):
    """
    Complete a pending or in-transit transfer.

    Returns:
        200: Transfer completed, product relocated
        404: Transfer not found
        409: Transfer not pending/in transit, or source stock no longer available
    """
    return respond(engine.complete_transfer(transfer_id))


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
def cancel_transfer(transfer_id: int):
    return respond(engine.cancel_transfer(transfer_id))
