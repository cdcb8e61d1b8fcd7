# Overview: Flask API routes for the batch ledger; parses input and returns JSON responses.

"""
Batch Ledger API Routes

WHY: Drive a batch through manufacturer -> distributor -> retailer custody
over HTTP, with the caller identified by the X-Caller-Address header.

DESIGN:
- Role checks and state rules live in batch_service; routes only parse input
- Every mutation commits on success and rolls back on failure
- Attached payment is passed as "value" (defaults to the price being paid)
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_caller
from ..services import batch_service, price_feed
from ..services.concurrency import commit_with_retry
from ..validation import ZERO_ADDRESS
from .common import error_response


batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


# =============================================================================
# CREATE / READ
# =============================================================================

@batches_bp.post("")
@require_caller
def create_batch_route():
    """
    Create a batch.

    Requires: MANUFACTURER role

    Request body:
    {
        "manufacturer": "0x...",  (optional, default: caller)
        "expiry": 1767225600,  (unix seconds, must be in the future)
        "price": 100,
        "content_ref": "0x..."  (optional, default: zero address)
    }

    Returns:
        201: Batch created
        400: Invalid input, zero manufacturer, or expiry not in the future
        403: Caller lacks MANUFACTURER
    """
    data = request.get_json(silent=True) or {}
    expiry = data.get("expiry")
    price = data.get("price")
    if expiry is None or price is None:
        return jsonify({"error": "expiry and price required"}), 400

    try:
        batch = batch_service.create_batch(
            caller=g.caller,
            manufacturer=data.get("manufacturer", g.caller),
            expiry=expiry,
            price=price,
            content_ref=data.get("content_ref", ZERO_ADDRESS),
        )
        commit_with_retry()
        return jsonify({"batch": batch.to_dict()}), 201
    except Exception as e:
        return error_response(e, "create batch")


@batches_bp.get("")
def list_batches_route():
    """
    List batches.

    Query params:
        status: CREATED, WITH_DISTRIBUTOR, WITH_RETAILER or RETURNED
        holder: current holder address
    """
    try:
        batches = batch_service.list_batches(
            status=request.args.get("status"),
            holder=request.args.get("holder"),
        )
        return jsonify({"batches": [b.to_dict() for b in batches], "count": len(batches)}), 200
    except Exception as e:
        return error_response(e, "list batches")


@batches_bp.get("/expired")
def list_expired_route():
    try:
        batches = batch_service.find_expired_batches(now=request.args.get("now", type=int))
        return jsonify({"batches": [b.to_dict() for b in batches], "count": len(batches)}), 200
    except Exception as e:
        return error_response(e, "list expired batches")


@batches_bp.get("/<int:batch_id>")
def get_batch_route(batch_id: int):
    try:
        return jsonify({"batch": batch_service.get_batch_details(batch_id)}), 200
    except Exception as e:
        return error_response(e, "get batch")


@batches_bp.get("/<int:batch_id>/content-ref")
def get_content_ref_route(batch_id: int):
    try:
        return jsonify({
            "batch_id": batch_id,
            "content_ref": batch_service.get_content_ref(batch_id),
        }), 200
    except Exception as e:
        return error_response(e, "get content reference")


@batches_bp.get("/<int:batch_id>/quote")
def quote_batch_route(batch_id: int):
    try:
        return jsonify({"quote": price_feed.quote_batch(batch_id)}), 200
    except Exception as e:
        return error_response(e, "quote batch")


@batches_bp.get("/<int:batch_id>/history")
def batch_history_route(batch_id: int):
    try:
        events = batch_service.get_batch_history(batch_id)
        return jsonify({"batch_id": batch_id, "events": [ev.to_dict() for ev in events]}), 200
    except Exception as e:
        return error_response(e, "read batch history")


# =============================================================================
# CUSTODY TRANSFERS
# =============================================================================

@batches_bp.post("/<int:batch_id>/buy-distributor")
@require_caller
def buy_as_distributor_route(batch_id: int):
    """
    Distributor purchase.

    Requires: DISTRIBUTOR role

    Request body (all optional):
    {
        "value": 100,  (attached payment, default: price)
        "offer_price": 150  (resale price, default: price)
    }

    Returns:
        200: Batch now WITH_DISTRIBUTOR
        402: Payment below price
        403: Caller lacks DISTRIBUTOR
        404: Batch not found
        409: Batch not CREATED, or expired
    """
    data = request.get_json(silent=True) or {}

    try:
        batch = batch_service.buy_as_distributor(
            caller=g.caller,
            batch_id=batch_id,
            offer_price=data.get("offer_price"),
            value=data.get("value"),
        )
        commit_with_retry()
        return jsonify({"batch": batch.to_dict()}), 200
    except Exception as e:
        return error_response(e, "buy batch as distributor")


@batches_bp.post("/<int:batch_id>/buy-retailer")
@require_caller
def buy_as_retailer_route(batch_id: int):
    """
    Retailer purchase at the distributor's offer price.

    Requires: RETAILER role

    Request body (optional):
    {
        "value": 150  (attached payment, default: offer price)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        batch = batch_service.buy_as_retailer(
            caller=g.caller,
            batch_id=batch_id,
            value=data.get("value"),
        )
        commit_with_retry()
        return jsonify({"batch": batch.to_dict()}), 200
    except Exception as e:
        return error_response(e, "buy batch as retailer")


@batches_bp.post("/<int:batch_id>/confirm-receipt")
@require_caller
def confirm_receipt_route(batch_id: int):
    try:
        batch = batch_service.confirm_receipt(caller=g.caller, batch_id=batch_id)
        commit_with_retry()
        return jsonify({"batch": batch.to_dict()}), 200
    except Exception as e:
        return error_response(e, "confirm receipt")
