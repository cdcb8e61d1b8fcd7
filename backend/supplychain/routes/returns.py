# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Request API Routes

WHY: Let the current holder of a batch dispute it and have the seller (or
an admin) approve or reject the return.

SECURITY:
- Only the batch holder can file a return
- Only an ADMIN or the counterparty can resolve it
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_caller
from ..services import request_service
from ..services.concurrency import commit_with_retry
from ..validation import coerce_int, coerce_optional_int
from .common import error_response, parse_bool


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_caller
def create_return_route():
    """
    File a return request.

    Request body:
    {
        "batch_id": 1,
        "reason": "Damaged in transit"  (optional)
    }

    Returns:
        201: Request PENDING, batch RETURNED
        403: Caller does not hold the batch
        404: Batch not found
        409: Batch not returnable or request already pending
    """
    data = request.get_json(silent=True) or {}
    if data.get("batch_id") is None:
        return jsonify({"error": "batch_id required"}), 400

    try:
        return_request = request_service.request_return(
            caller=g.caller,
            batch_id=coerce_int(data.get("batch_id"), "batch_id"),
            reason=data.get("reason"),
        )
        commit_with_retry()
        return jsonify({"return": return_request.to_dict()}), 201
    except Exception as e:
        return error_response(e, "create return")


@returns_bp.get("")
def list_returns_route():
    try:
        requests_ = request_service.list_return_requests(
            batch_id=coerce_optional_int(request.args.get("batch_id"), "batch_id"),
            status=request.args.get("status"),
        )
        return jsonify({"returns": [r.to_dict() for r in requests_], "count": len(requests_)}), 200
    except Exception as e:
        return error_response(e, "list returns")


@returns_bp.post("/<int:request_id>/resolve")
@require_caller
def resolve_return_route(request_id: int):
    """
    Approve or reject a pending return.

    Request body:
    {
        "approve": true
    }
    """
    data = request.get_json(silent=True) or {}
    if "approve" not in data:
        return jsonify({"error": "approve required"}), 400

    try:
        return_request = request_service.resolve_return(
            caller=g.caller,
            request_id=request_id,
            approve=parse_bool(data.get("approve"), "approve"),
        )
        commit_with_retry()
        return jsonify({"return": return_request.to_dict()}), 200
    except Exception as e:
        return error_response(e, "resolve return")


@returns_bp.get("/<int:request_id>")
def get_return_route(request_id: int):
    try:
        return jsonify({"return": request_service.get_return_request(request_id).to_dict()}), 200
    except Exception as e:
        return error_response(e, "get return")
