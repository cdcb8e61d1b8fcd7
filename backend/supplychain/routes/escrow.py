# Overview: Flask API routes for the escrow vault; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_caller
from ..services import escrow_service, role_service
from ..services.concurrency import commit_with_retry
from .common import error_response


escrow_bp = Blueprint("escrow", __name__, url_prefix="/api/escrow")


@escrow_bp.post("/deposit")
@require_caller
def deposit_route():
    """
    Deposit a payment into escrow with the caller as payer.

    Direct deposits are not tied to a batch; the ledger links its own
    purchase payments. The payer can cancel an outstanding direct deposit
    via /api/escrow/<id>/refund.

    Request body:
    {
        "payee": "0x...",
        "amount": 100,
        "value": 120  (optional, attached value; excess is returned)
    }

    Returns:
        201: Entry created (OUTSTANDING)
        400: Zero payee or invalid input
        402: Insufficient payment
    """
    data = request.get_json(silent=True) or {}
    payee = data.get("payee")
    amount = data.get("amount")
    if not payee or amount is None:
        return jsonify({"error": "payee and amount required"}), 400

    try:
        entry = escrow_service.deposit(
            payer=g.caller,
            payee=payee,
            amount=amount,
            value=data.get("value"),
        )
        commit_with_retry()
        return jsonify({"entry": entry.to_dict()}), 201
    except Exception as e:
        return error_response(e, "deposit escrow")


@escrow_bp.post("/release")
@require_caller
def release_route():
    """
    Release an outstanding entry to its payee.

    Requires: ADMIN role (the ledger releases automatically during custody
    transfers; this endpoint is the manual path)

    Request body:
    {
        "payee": "0x...",
        "amount": 100,
        "entry_id": 3  (optional; default: oldest outstanding match)
    }

    Returns:
        200: Entry released
        403: Caller is not ADMIN
        404: No matching entry
        409: Entry already released
    """
    data = request.get_json(silent=True) or {}
    payee = data.get("payee")
    amount = data.get("amount")
    if not payee or amount is None:
        return jsonify({"error": "payee and amount required"}), 400

    try:
        role_service.require_admin(g.caller, "release_escrow")
        entry = escrow_service.release(payee, amount, entry_id=data.get("entry_id"))
        commit_with_retry()
        return jsonify({"entry": entry.to_dict()}), 200
    except Exception as e:
        return error_response(e, "release escrow")


@escrow_bp.post("/<int:entry_id>/refund")
@require_caller
def refund_route(entry_id: int):
    """
    Cancel a direct deposit and pay it back to the payer.

    Requires: caller is the payer or holds ADMIN

    Returns:
        200: Entry refunded
        403: Caller is neither payer nor ADMIN
        404: Unknown entry
        409: Entry belongs to a batch, or already settled
    """
    try:
        entry = escrow_service.cancel_deposit(g.caller, entry_id)
        commit_with_retry()
        return jsonify({"entry": entry.to_dict()}), 200
    except Exception as e:
        return error_response(e, "refund escrow")


@escrow_bp.get("/<int:entry_id>")
def get_entry_route(entry_id: int):
    try:
        return jsonify({"entry": escrow_service.get_entry(entry_id).to_dict()}), 200
    except Exception as e:
        return error_response(e, "get escrow entry")


@escrow_bp.get("/balances/<address>")
def get_balance_route(address: str):
    try:
        return jsonify({
            "address": address.lower(),
            "balance": escrow_service.get_balance(address),
        }), 200
    except Exception as e:
        return error_response(e, "get balance")
