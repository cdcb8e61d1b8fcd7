# backend/supplychain/routes/system.py
"""
System health endpoint.

Reports database connectivity, ledger counts and the configured price feed
for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Batch, EscrowEntry, LedgerEvent, ParticipantRole
from ..roles import ROLE_ADMIN
from ..services.escrow_service import ESCROW_STATUS_OUTSTANDING
from supplychain.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        batch_count = db.session.query(Batch).count()
        outstanding_entries = db.session.query(EscrowEntry).filter_by(
            status=ESCROW_STATUS_OUTSTANDING
        ).count()
        event_count = db.session.query(LedgerEvent).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "batches": batch_count,
                "outstanding_escrow_entries": outstanding_entries,
                "events": event_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_role_registry_health() -> dict:
    """
    An admin must exist or nobody can grant roles.
    """
    start_time = time.time()
    try:
        admin_count = db.session.query(ParticipantRole).filter_by(role=ROLE_ADMIN).count()
        elapsed_ms = (time.time() - start_time) * 1000

        if admin_count == 0:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "No ADMIN configured",
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"admins": admin_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Role registry health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Role registry error"
        }


def check_price_feed_health() -> dict:
    start_time = time.time()
    feed = current_app.extensions.get("supplychain.price_feed")
    if feed is None:
        return {"status": "degraded", "latency_ms": 0.0, "warning": "No price feed configured"}
    try:
        decimals = feed.decimals()
        latest = feed.latest_value()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"decimals": decimals, "latest_value": latest},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Price feed health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Price feed error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy (or degraded but operational)
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    role_health = check_role_registry_health()
    feed_health = check_price_feed_health()

    all_checks = [database_health, role_health, feed_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "role_registry": role_health,
            "price_feed": feed_health,
        }
    }

    return response, http_status
