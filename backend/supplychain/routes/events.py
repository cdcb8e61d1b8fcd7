# Overview: Flask API routes for the ledger event log; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services.event_service import EVENT_SIGNATURES, list_events

"""
Event log semantics:
- Events are returned in emission order (ascending id).
- after_id is exclusive; pass the last id seen to page forward.
"""

events_bp = Blueprint("events", __name__, url_prefix="/api/events")


@events_bp.get("")
def list_events_route():
    name = request.args.get("name")
    if name and name not in EVENT_SIGNATURES:
        return jsonify({"error": f"Unknown event: {name}"}), 400

    batch_id = request.args.get("batch_id", type=int)
    after_id = request.args.get("after_id", type=int)

    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    events = list_events(event_name=name, batch_id=batch_id, after_id=after_id, limit=limit)
    next_cursor = events[-1].id if len(events) == limit else None

    return jsonify({
        "items": [ev.to_dict() for ev in events],
        "next_after_id": next_cursor,
        "limit": limit,
    }), 200
