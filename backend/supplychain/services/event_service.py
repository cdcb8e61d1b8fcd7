# Overview: Service-layer operations for the ledger event log.

from __future__ import annotations

import json

from ..extensions import db
from ..models import LedgerEvent
"""
Event Log Invariants (authoritative)

- Append-only: no updates or deletes of existing events.
- Event names and positional field order are fixed; consumers match on both.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back operation leaves no events behind.
"""


# Event name -> positional field names (order is part of the contract)
EVENT_SIGNATURES: dict[str, tuple[str, ...]] = {
    "BatchCreated": ("batchId", "timestamp"),
    "DistributorPurchased": ("batchId", "distributor"),
    "RetailerPurchased": ("batchId", "retailer"),
    "ReceiptConfirmed": ("batchId", "retailer"),
    "RoleGranted": ("role", "account", "sender"),
    "RoleRevoked": ("role", "account", "sender"),
    "AddressFrozen": ("account",),
    "AddressUnfrozen": ("account",),
    "EscrowDeposited": ("entryId", "payer", "payee", "amount"),
    "EscrowReleased": ("entryId", "payee", "amount"),
    "EscrowRefunded": ("entryId", "payer", "amount"),
    "ReturnRequested": ("requestId", "batchId", "requester"),
    "ReturnResolved": ("requestId", "batchId", "approved"),
}


def emit_event(
    event_name: str,
    *args,
    batch_id: int | None = None,
    actor: str | None = None,
) -> LedgerEvent:
    """
    Append one event with positional arguments in signature order.

    Raises ValueError for unknown events or an argument count that does not
    match the signature.
    """
    fields = EVENT_SIGNATURES.get(event_name)
    if fields is None:
        raise ValueError(f"Unknown event: {event_name}")
    if len(args) != len(fields):
        raise ValueError(f"{event_name} expects {len(fields)} args, got {len(args)}")

    ev = LedgerEvent(
        event_name=event_name,
        args_json=json.dumps(list(args)),
        fields_json=json.dumps(list(fields)),
        batch_id=batch_id,
        actor=actor,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_events(
    *,
    event_name: str | None = None,
    batch_id: int | None = None,
    after_id: int | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    """Events in emission order, optionally filtered."""
    q = db.session.query(LedgerEvent)
    if event_name:
        q = q.filter(LedgerEvent.event_name == event_name)
    if batch_id is not None:
        q = q.filter(LedgerEvent.batch_id == batch_id)
    if after_id is not None:
        q = q.filter(LedgerEvent.id > after_id)
    return q.order_by(LedgerEvent.id.asc()).limit(limit).all()
