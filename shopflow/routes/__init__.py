# Overview: Shared response helpers for the API blueprints.

from flask import jsonify

from ..engine import OperationResult
from ..errors import ShopflowError


def respond(result: OperationResult, success_status: int = 200):
    """Serialize an engine result; failures use the error's status hint."""
    status = success_status if result.success else result.status_code
    return jsonify(result.to_dict()), status


def error_response(exc: ShopflowError):
    return jsonify({"success": False, "error": exc.to_dict()}), exc.status_code


def ok(data, status: int = 200):
    return jsonify({"success": True, "data": data}), status
