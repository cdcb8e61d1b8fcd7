# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .validation import ValidationError, normalize_address


CALLER_HEADER = "X-Caller-Address"


def require_caller(f):
    """
    Require a caller address and establish it as request context.

    Sets g.caller to the normalized address from the X-Caller-Address header.
    Role checks happen in the service layer, not here.

    Returns 401 if the header is missing, 400 if it is not a valid address.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(CALLER_HEADER)

        if not raw:
            return jsonify({"error": "Caller address required", "header": CALLER_HEADER}), 401

        try:
            g.caller = normalize_address(raw, "caller")
        except ValidationError as e:
            return jsonify({"error": "VALIDATION_ERROR", "message": str(e)}), 400

        return f(*args, **kwargs)

    return decorated_function
