# Overview: Service-layer operations for the escrow vault; encapsulates business logic and database work.

"""
Escrow Vault

WHY: A buyer's payment must not reach the seller until the transfer it pays
for is confirmed. The vault holds each payment as an escrow entry and pays it
out exactly once: released to the payee, or refunded to the payer.

DESIGN PRINCIPLES:
- Checks, then effects, then interactions: an entry is marked settled and
  flushed before any value leaves the vault
- Payouts go through a pluggable sink (app.extensions["supplychain.payout"]);
  the default credits the payee's Account balance
- Vault mutations are rejected while a payout is running (no reentrancy)
- No commits here; callers commit or roll back the whole operation

LIFECYCLE:
1. deposit -> OUTSTANDING
2. release -> RELEASED (payee paid)   or   refund -> REFUNDED (payer paid)
"""

from __future__ import annotations

from sqlalchemy import func
from flask import current_app

from ..extensions import db
from ..errors import (
    AlreadyReleasedError,
    InsufficientPaymentError,
    InvalidPartyError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from ..models import Account, Batch, EscrowEntry
from ..roles import ROLE_ADMIN
from ..validation import ValidationError, coerce_int, is_zero_address, normalize_address
from .concurrency import ensure_not_in_payout, lock_for_update, nonreentrant, run_with_retry
from .event_service import emit_event
from .role_service import has_role, log_security_event
from supplychain.time_utils import utcnow


# Escrow status constants
ESCROW_STATUS_OUTSTANDING = "OUTSTANDING"
ESCROW_STATUS_RELEASED = "RELEASED"
ESCROW_STATUS_REFUNDED = "REFUNDED"


# =============================================================================
# PAYOUT SINK
# =============================================================================

def credit_account(address: str, amount: int) -> Account:
    """Default payout sink: add `amount` to the address's balance."""
    account = lock_for_update(db.session.query(Account).filter_by(address=address)).first()
    if not account:
        account = Account(address=address, balance=0)
        db.session.add(account)
    account.balance = (account.balance or 0) + amount
    db.session.flush()
    return account


def get_balance(address: str) -> int:
    account = db.session.query(Account).filter_by(address=normalize_address(address)).first()
    return account.balance if account else 0


def _payout(address: str, amount: int, action: str) -> None:
    """
    Transfer native currency out of the vault.

    Must be the last step of any vault operation. The sink runs inside the
    reentrancy guard, so it cannot call back into deposit/release/refund.
    """
    if amount <= 0:
        return
    sink = current_app.extensions.get("supplychain.payout") or credit_account
    with nonreentrant(action):
        sink(address, amount)


# =============================================================================
# DEPOSIT
# =============================================================================

def _resolve_party(value: str, label: str) -> str:
    address = normalize_address(value, label.lower())
    if is_zero_address(address):
        raise InvalidPartyError(f"{label} address cannot be zero")
    return address


def deposit(
    payer: str,
    payee: str,
    amount: int,
    value: int | None = None,
    batch_id: int | None = None,
) -> EscrowEntry:
    """
    Hold a payment from payer for payee.

    Args:
        payer: Address paying into escrow
        payee: Address the payment is destined for
        amount: Amount to hold
        value: Value actually attached by the payer (defaults to amount).
            Any excess over amount is paid straight back to the payer.
        batch_id: Batch this payment is for, if any

    Returns:
        EscrowEntry: the OUTSTANDING entry (its id is the handle)

    Raises:
        InvalidPartyError: payer or payee is the zero address
        InsufficientPaymentError: value not positive, below amount, or (strict
            mode) not exactly amount
        NotFoundError: batch_id does not name an existing batch
    """
    def _op():
        ensure_not_in_payout("deposit")

        payer_addr = _resolve_party(payer, "Payer")
        payee_addr = _resolve_party(payee, "Payee")

        amount_int = coerce_int(amount, "amount")
        value_int = amount_int if value is None else coerce_int(value, "value")

        if value_int <= 0 or amount_int <= 0:
            raise InsufficientPaymentError("Insufficient payment sent")

        if current_app.config.get("ESCROW_STRICT_DEPOSIT") and value_int != amount_int:
            raise InsufficientPaymentError(
                f"Payment must equal escrow amount. Sent: {value_int}, required: {amount_int}"
            )

        if value_int < amount_int:
            raise InsufficientPaymentError(
                f"Insufficient payment sent. Sent: {value_int}, required: {amount_int}"
            )

        if batch_id is not None and db.session.get(Batch, batch_id) is None:
            raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)

        entry = EscrowEntry(
            payer=payer_addr,
            payee=payee_addr,
            amount=amount_int,
            status=ESCROW_STATUS_OUTSTANDING,
            batch_id=batch_id,
        )
        db.session.add(entry)
        db.session.flush()  # Get ID

        emit_event(
            "EscrowDeposited",
            entry.id, payer_addr, payee_addr, amount_int,
            batch_id=batch_id,
            actor=payer_addr,
        )

        change = value_int - amount_int
        _payout(payer_addr, change, "deposit change")

        return entry

    return run_with_retry(_op)


# =============================================================================
# RELEASE / REFUND
# =============================================================================

def _locate_release_entry(payee: str, amount: int, entry_id: int | None) -> EscrowEntry:
    if entry_id is not None:
        entry = lock_for_update(db.session.query(EscrowEntry).filter_by(id=entry_id)).first()
        if not entry:
            raise NotFoundError(f"Escrow entry {entry_id} not found", entry_id=entry_id)
        if entry.payee != payee:
            raise InvalidPartyError(f"Payee {payee} does not match escrow entry {entry_id}")
        if entry.amount != amount:
            raise ValidationError(
                f"Release amount {amount} does not match escrow entry amount {entry.amount}"
            )
        return entry

    entry = lock_for_update(
        db.session.query(EscrowEntry)
        .filter_by(payee=payee, amount=amount, status=ESCROW_STATUS_OUTSTANDING)
        .order_by(EscrowEntry.id.asc())
    ).first()
    if entry:
        return entry

    settled = (
        db.session.query(EscrowEntry)
        .filter(
            EscrowEntry.payee == payee,
            EscrowEntry.amount == amount,
            EscrowEntry.status != ESCROW_STATUS_OUTSTANDING,
        )
        .order_by(EscrowEntry.id.desc())
        .first()
    )
    if settled:
        raise AlreadyReleasedError(
            f"Escrow entry {settled.id} already {settled.status.lower()}",
            entry_id=settled.id,
        )
    raise NotFoundError(f"No outstanding escrow of {amount} for payee {payee}")


def release(payee: str, amount: int, entry_id: int | None = None) -> EscrowEntry:
    """
    Pay an outstanding entry out to its payee.

    The entry is identified by handle (entry_id) or, without one, as the
    oldest outstanding entry for this payee and amount.

    Raises:
        InvalidPartyError: payee is the zero address (or does not match the entry)
        AlreadyReleasedError: the entry was already released or refunded
        NotFoundError: no matching entry
    """
    def _op():
        ensure_not_in_payout("release")

        payee_addr = _resolve_party(payee, "Payee")
        amount_int = coerce_int(amount, "amount")

        entry = _locate_release_entry(payee_addr, amount_int, entry_id)
        if not entry.outstanding:
            raise AlreadyReleasedError(
                f"Escrow entry {entry.id} already {entry.status.lower()}",
                entry_id=entry.id,
            )

        # Effects before interaction
        entry.status = ESCROW_STATUS_RELEASED
        entry.settled_at = utcnow()
        db.session.flush()

        emit_event(
            "EscrowReleased",
            entry.id, entry.payee, entry.amount,
            batch_id=entry.batch_id,
            actor=entry.payee,
        )
        current_app.logger.info("Escrow %s released: %s to %s", entry.id, entry.amount, entry.payee)

        _payout(entry.payee, entry.amount, "release")
        return entry

    return run_with_retry(_op)


def release_entry(entry_id: int) -> EscrowEntry:
    """Release an entry by handle alone."""
    entry = get_entry(entry_id)
    return release(entry.payee, entry.amount, entry_id=entry.id)


def refund(entry_id: int) -> EscrowEntry:
    """
    Pay an outstanding entry back to its payer (reverse escrow flow).

    Raises:
        NotFoundError: unknown entry
        AlreadyReleasedError: the entry was already released or refunded
    """
    def _op():
        ensure_not_in_payout("refund")

        entry = lock_for_update(db.session.query(EscrowEntry).filter_by(id=entry_id)).first()
        if not entry:
            raise NotFoundError(f"Escrow entry {entry_id} not found", entry_id=entry_id)
        if not entry.outstanding:
            raise AlreadyReleasedError(
                f"Escrow entry {entry.id} already {entry.status.lower()}",
                entry_id=entry.id,
            )

        entry.status = ESCROW_STATUS_REFUNDED
        entry.settled_at = utcnow()
        db.session.flush()

        emit_event(
            "EscrowRefunded",
            entry.id, entry.payer, entry.amount,
            batch_id=entry.batch_id,
            actor=entry.payer,
        )
        current_app.logger.info("Escrow %s refunded: %s to %s", entry.id, entry.amount, entry.payer)

        _payout(entry.payer, entry.amount, "refund")
        return entry

    return run_with_retry(_op)


def cancel_deposit(caller: str, entry_id: int) -> EscrowEntry:
    """
    Refund a direct (batch-less) deposit at the request of its payer or an ADMIN.

    Entries tied to a batch settle through the ledger and the return flow only.

    Raises:
        NotFoundError: unknown entry
        InvalidStateError: entry belongs to a batch
        UnauthorizedError: caller is neither the payer nor ADMIN
        AlreadyReleasedError: the entry was already released or refunded
    """
    def _op():
        requester = normalize_address(caller, "caller")
        entry = get_entry(entry_id)

        if entry.batch_id is not None:
            raise InvalidStateError(
                f"Escrow entry {entry.id} belongs to batch {entry.batch_id}; use a return request",
                entry_id=entry.id,
                batch_id=entry.batch_id,
            )

        if requester != entry.payer and not has_role(requester, ROLE_ADMIN):
            reason = f"Only the payer or an admin can cancel escrow entry {entry.id}"
            log_security_event(
                address=requester,
                event_type="PERMISSION_DENIED",
                success=False,
                action="cancel_deposit",
                role=ROLE_ADMIN,
                reason=reason,
            )
            raise UnauthorizedError(requester, ROLE_ADMIN, reason)

        return refund(entry.id)

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_entry(entry_id: int) -> EscrowEntry:
    entry = db.session.get(EscrowEntry, entry_id)
    if not entry:
        raise NotFoundError(f"Escrow entry {entry_id} not found", entry_id=entry_id)
    return entry


def list_entries(
    *,
    payer: str | None = None,
    payee: str | None = None,
    status: str | None = None,
    batch_id: int | None = None,
) -> list[EscrowEntry]:
    q = db.session.query(EscrowEntry)
    if payer:
        q = q.filter(EscrowEntry.payer == normalize_address(payer, "payer"))
    if payee:
        q = q.filter(EscrowEntry.payee == normalize_address(payee, "payee"))
    if status:
        q = q.filter(EscrowEntry.status == status.upper())
    if batch_id is not None:
        q = q.filter(EscrowEntry.batch_id == batch_id)
    return q.order_by(EscrowEntry.id.asc()).all()


def outstanding_total() -> int:
    """Total value currently held by the vault."""
    total = (
        db.session.query(func.coalesce(func.sum(EscrowEntry.amount), 0))
        .filter(EscrowEntry.status == ESCROW_STATUS_OUTSTANDING)
        .scalar()
    )
    return int(total or 0)
