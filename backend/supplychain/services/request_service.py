# Overview: Service-layer operations for return requests; encapsulates business logic and database work.

"""
Return Requests

WHY: A downstream holder who received a bad batch needs a way out of the
forward-only custody chain. Filing a return freezes the batch (RETURNED)
while its seller, or an admin, decides.

LIFECYCLE:
1. PENDING: Holder filed the request; batch status is RETURNED
2. APPROVED: Escrowed payment refunded to the requester; custody goes back
   to the seller; batch stays RETURNED
3. REJECTED: Batch restored to the status it had when the request was filed

INVARIANTS:
- Only the current holder can file, and only while the payment that bought
  the batch is still held in escrow
- At most one PENDING request per batch
- Funds only move on approval
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, UnauthorizedError
from ..models import Batch, EscrowEntry, ReturnRequest
from ..roles import ROLE_ADMIN, ROLE_DISTRIBUTOR, ROLE_RETAILER
from ..validation import normalize_address
from . import escrow_service
from .batch_service import (
    BATCH_STATUS_RETURNED,
    BATCH_STATUS_WITH_DISTRIBUTOR,
    BATCH_STATUS_WITH_RETAILER,
    _resolve_now,
)
from .concurrency import lock_for_update, run_with_retry
from .event_service import emit_event
from .role_service import has_role, is_frozen, log_security_event, require_active_role


# Request status constants
REQUEST_STATUS_PENDING = "PENDING"
REQUEST_STATUS_APPROVED = "APPROVED"
REQUEST_STATUS_REJECTED = "REJECTED"

# Holder status -> (role the holder acts under, escrow column that funded the purchase)
_RETURNABLE = {
    BATCH_STATUS_WITH_DISTRIBUTOR: (ROLE_DISTRIBUTOR, "manufacturer_escrow_id"),
    BATCH_STATUS_WITH_RETAILER: (ROLE_RETAILER, "distributor_escrow_id"),
}


def _deny(address: str, role: str, action: str, reason: str) -> UnauthorizedError:
    log_security_event(
        address=address,
        event_type="PERMISSION_DENIED",
        success=False,
        action=action,
        role=role,
        reason=reason,
    )
    return UnauthorizedError(address, role, reason)


def request_return(
    caller: str,
    batch_id: int,
    reason: str | None = None,
    now: int | None = None,
) -> ReturnRequest:
    """
    File a return request for a batch the caller currently holds.

    Raises:
        NotFoundError: unknown batch
        InvalidStateError: batch not with a distributor or retailer, its
            escrow already settled, or a request is already pending
        UnauthorizedError: caller is not the active holder
    """
    def _op():
        requester = normalize_address(caller, "caller")
        ts = _resolve_now(now)

        batch = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).first()
        if not batch:
            raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)

        if batch.status not in _RETURNABLE:
            raise InvalidStateError(
                f"Cannot return batch {batch.id} in {batch.status} status",
                batch_id=batch.id,
                status=batch.status,
            )

        role, escrow_column = _RETURNABLE[batch.status]
        require_active_role(requester, role, "request_return")
        if batch.holder != requester:
            raise _deny(requester, role, "request_return", f"Account {requester} does not hold batch {batch.id}")

        entry_id = getattr(batch, escrow_column)
        entry = lock_for_update(db.session.query(EscrowEntry).filter_by(id=entry_id)).first() if entry_id else None
        if entry is None or not entry.outstanding:
            raise InvalidStateError(
                f"Payment for batch {batch.id} is already settled; it cannot be returned",
                batch_id=batch.id,
            )

        pending = db.session.query(ReturnRequest).filter_by(
            batch_id=batch.id,
            status=REQUEST_STATUS_PENDING,
        ).first()
        if pending:
            raise InvalidStateError(
                f"Batch {batch.id} already has a pending return request",
                batch_id=batch.id,
                request_id=pending.id,
            )

        request = ReturnRequest(
            batch_id=batch.id,
            requester=requester,
            counterparty=entry.payee,
            reason=reason,
            prior_status=batch.status,
            escrow_entry_id=entry.id,
            status=REQUEST_STATUS_PENDING,
            created_at=ts,
        )
        db.session.add(request)

        batch.status = BATCH_STATUS_RETURNED
        db.session.flush()

        emit_event("ReturnRequested", request.id, batch.id, requester, batch_id=batch.id, actor=requester)
        current_app.logger.info("Return %s requested for batch %s by %s", request.id, batch.id, requester)
        return request

    return run_with_retry(_op)


def resolve_return(
    caller: str,
    request_id: int,
    approve: bool,
    now: int | None = None,
) -> ReturnRequest:
    """
    Approve or reject a pending return (ADMIN or the counterparty).

    Approve refunds the escrowed payment to the requester and hands custody
    back to the counterparty. Reject restores the batch's prior status.

    Raises:
        NotFoundError: unknown request
        InvalidStateError: request is not PENDING
        UnauthorizedError: caller is neither ADMIN nor the (unfrozen) counterparty
    """
    def _op():
        resolver = normalize_address(caller, "caller")
        ts = _resolve_now(now)

        request = lock_for_update(db.session.query(ReturnRequest).filter_by(id=request_id)).first()
        if not request:
            raise NotFoundError(f"Return request {request_id} not found", request_id=request_id)

        if request.status != REQUEST_STATUS_PENDING:
            raise InvalidStateError(
                f"Cannot resolve return request in {request.status} status",
                request_id=request.id,
                status=request.status,
            )

        if not has_role(resolver, ROLE_ADMIN):
            if resolver != request.counterparty:
                raise _deny(
                    resolver, ROLE_ADMIN, "resolve_return",
                    f"Account {resolver} cannot resolve return request {request.id}",
                )
            if is_frozen(resolver):
                raise _deny(resolver, ROLE_ADMIN, "resolve_return", f"Account {resolver} is frozen")

        batch = lock_for_update(db.session.query(Batch).filter_by(id=request.batch_id)).first()

        approved = bool(approve)
        request.status = REQUEST_STATUS_APPROVED if approved else REQUEST_STATUS_REJECTED
        request.resolved_by = resolver
        request.resolved_at = ts

        if approved:
            batch.holder = request.counterparty
        else:
            batch.status = request.prior_status
        db.session.flush()

        emit_event("ReturnResolved", request.id, batch.id, approved, batch_id=batch.id, actor=resolver)

        if approved:
            escrow_service.refund(request.escrow_entry_id)

        current_app.logger.info(
            "Return %s for batch %s %s by %s",
            request.id, batch.id, request.status.lower(), resolver,
        )
        return request

    return run_with_retry(_op)


def get_return_request(request_id: int) -> ReturnRequest:
    request = db.session.get(ReturnRequest, request_id)
    if not request:
        raise NotFoundError(f"Return request {request_id} not found", request_id=request_id)
    return request


def list_return_requests(batch_id: int | None = None, status: str | None = None) -> list[ReturnRequest]:
    q = db.session.query(ReturnRequest)
    if batch_id is not None:
        q = q.filter(ReturnRequest.batch_id == batch_id)
    if status:
        q = q.filter(ReturnRequest.status == status.strip().upper())
    return q.order_by(ReturnRequest.id.asc()).all()
