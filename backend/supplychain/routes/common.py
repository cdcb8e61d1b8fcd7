# Overview: Shared helpers for API routes; maps service errors to JSON responses.

from flask import jsonify, current_app

from ..errors import SupplyChainError
from ..extensions import db
from ..validation import ValidationError


def error_response(exc: Exception, action: str):
    """
    Roll back the failed operation and answer with the error as JSON.

    Domain errors carry their own status code; anything else is logged and
    reported as a 500.
    """
    db.session.rollback()

    if isinstance(exc, SupplyChainError):
        return jsonify(exc.to_dict()), exc.status_code
    if isinstance(exc, ValidationError):
        return jsonify({"error": "VALIDATION_ERROR", "message": str(exc)}), 400

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")
