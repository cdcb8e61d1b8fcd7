# Overview: Flask API routes for the role registry; parses input and returns JSON responses.

"""
Role Registry API Routes

SECURITY:
- Every mutation requires the caller to hold ADMIN (checked in role_service)
- Denied attempts are recorded in security_events
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_caller
from ..roles import get_all_role_codes, get_role_definition
from ..services import role_service
from ..services.concurrency import commit_with_retry
from .common import error_response


roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


@roles_bp.post("/grant")
@require_caller
def grant_role_route():
    """
    Grant a role to an address.

    Request body:
    {
        "role": "DISTRIBUTOR",
        "address": "0x..."
    }

    Returns:
        201: Role granted
        400: Invalid input
        403: Caller is not ADMIN
        409: Address already holds the role
    """
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    address = data.get("address")
    if not role or not address:
        return jsonify({"error": "role and address required"}), 400

    try:
        role_service.grant_role(g.caller, role, address)
        commit_with_retry()
        return jsonify({"participant": role_service.get_participant_summary(address)}), 201
    except Exception as e:
        return error_response(e, "grant role")


@roles_bp.post("/revoke")
@require_caller
def revoke_role_route():
    """Revoke a role. Revoking a role that is not held succeeds with revoked=false."""
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    address = data.get("address")
    if not role or not address:
        return jsonify({"error": "role and address required"}), 400

    try:
        revoked = role_service.revoke_role(g.caller, role, address)
        commit_with_retry()
        return jsonify({
            "revoked": revoked,
            "participant": role_service.get_participant_summary(address),
        }), 200
    except Exception as e:
        return error_response(e, "revoke role")


@roles_bp.post("/freeze")
@require_caller
def freeze_route():
    """Freeze an address; its non-ADMIN roles are revoked."""
    data = request.get_json(silent=True) or {}
    address = data.get("address")
    if not address:
        return jsonify({"error": "address required"}), 400

    try:
        participant = role_service.freeze_address(g.caller, address)
        commit_with_retry()
        return jsonify({"participant": participant.to_dict()}), 200
    except Exception as e:
        return error_response(e, "freeze address")


@roles_bp.post("/unfreeze")
@require_caller
def unfreeze_route():
    data = request.get_json(silent=True) or {}
    address = data.get("address")
    if not address:
        return jsonify({"error": "address required"}), 400

    try:
        participant = role_service.unfreeze_address(g.caller, address)
        commit_with_retry()
        return jsonify({"participant": participant.to_dict()}), 200
    except Exception as e:
        return error_response(e, "unfreeze address")


@roles_bp.get("")
def list_role_definitions_route():
    return jsonify({"roles": [get_role_definition(code) for code in get_all_role_codes()]}), 200


@roles_bp.get("/<address>")
def get_roles_route(address: str):
    try:
        return jsonify({"participant": role_service.get_participant_summary(address)}), 200
    except Exception as e:
        return error_response(e, "read roles")
