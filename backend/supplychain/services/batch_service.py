# Overview: Service-layer operations for the batch ledger; encapsulates business logic and database work.

"""
Batch Ledger

WHY: Track each batch of product through a fixed chain of custodians with
every transfer gated by role membership and paid through escrow.

LIFECYCLE:
1. CREATED: Manufacturer creates the batch (holder = manufacturer)
2. WITH_DISTRIBUTOR: Distributor buys at price; payment escrowed for the manufacturer
3. WITH_RETAILER: Retailer buys at the distributor's offer price; payment
   escrowed for the distributor and the manufacturer's escrow is released
4. Retailer confirms receipt: the distributor's escrow is released

A batch can leave the forward path only through a return request
(see request_service).

SETTLEMENT:
- Manufacturer is paid when the retailer buys (the batch has moved on)
- Distributor is paid when the retailer confirms receipt
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import (
    BatchExpiredError,
    ExpiredInputError,
    InsufficientPaymentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ZeroAddressError,
)
from ..models import Batch, EscrowEntry, LedgerEvent
from ..roles import ROLE_DISTRIBUTOR, ROLE_MANUFACTURER, ROLE_RETAILER
from ..validation import (
    ValidationError,
    coerce_int,
    coerce_optional_int,
    is_zero_address,
    normalize_address,
    require_positive,
)
from . import escrow_service
from .concurrency import lock_for_update, run_with_retry
from .event_service import emit_event, list_events
from .role_service import log_security_event, require_active_role
from supplychain.time_utils import current_timestamp


# Batch status constants
BATCH_STATUS_CREATED = "CREATED"
BATCH_STATUS_WITH_DISTRIBUTOR = "WITH_DISTRIBUTOR"
BATCH_STATUS_WITH_RETAILER = "WITH_RETAILER"
BATCH_STATUS_RETURNED = "RETURNED"

BATCH_STATUSES = (
    BATCH_STATUS_CREATED,
    BATCH_STATUS_WITH_DISTRIBUTOR,
    BATCH_STATUS_WITH_RETAILER,
    BATCH_STATUS_RETURNED,
)

BPS_DENOMINATOR = 10_000


def _resolve_now(now: int | None) -> int:
    return current_timestamp() if now is None else coerce_int(now, "now")


def _lock_batch(batch_id: int) -> Batch:
    batch = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).first()
    if not batch:
        raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)
    return batch


def _escrow_entry(entry_id: int | None) -> EscrowEntry | None:
    if entry_id is None:
        return None
    return db.session.get(EscrowEntry, entry_id)


def _ensure_not_expired(batch: Batch, now: int) -> None:
    if batch.expiry <= now:
        raise BatchExpiredError(
            f"Batch {batch.id} expired at {batch.expiry}",
            batch_id=batch.id,
            expiry=batch.expiry,
        )


def _resolve_offer_price(price: int, offer_price: int | None) -> int:
    if offer_price is None:
        return price
    offer = coerce_int(offer_price, "offer_price")
    if offer < price:
        raise ValidationError(f"offer_price must be >= price ({price})")

    max_bps = current_app.config.get("MAX_DISTRIBUTOR_MARKUP_BPS")
    if max_bps is not None and offer * BPS_DENOMINATOR > price * (BPS_DENOMINATOR + max_bps):
        raise ValidationError(
            f"offer_price {offer} exceeds the maximum markup of {max_bps} bps over {price}"
        )
    return offer


# =============================================================================
# CREATE
# =============================================================================

def create_batch(
    caller: str,
    manufacturer: str,
    expiry: int,
    price: int,
    content_ref: str,
    now: int | None = None,
) -> Batch:
    """
    Create a new batch held by its manufacturer (status: CREATED).

    Args:
        caller: Address invoking the operation (must hold MANUFACTURER)
        manufacturer: Manufacturer of record (non-zero, immutable)
        expiry: Unix seconds, strictly after now
        price: Price in native base units (> 0)
        content_ref: Address-shaped content reference (may be the zero address)
        now: Ledger time (defaults to the current time)

    Returns:
        Batch: The created batch

    Raises:
        ZeroAddressError: manufacturer is the zero address (checked first)
        UnauthorizedError: caller lacks an active MANUFACTURER role
        ExpiredInputError: expiry <= now
        ValidationError: price <= 0 or malformed input
    """
    def _op():
        manufacturer_addr = normalize_address(manufacturer, "manufacturer")
        if is_zero_address(manufacturer_addr):
            raise ZeroAddressError("Manufacturer address cannot be zero")

        require_active_role(caller, ROLE_MANUFACTURER, "create_batch")

        ts = _resolve_now(now)
        expiry_int = coerce_int(expiry, "expiry")
        if expiry_int <= ts:
            raise ExpiredInputError("Expiry date must be in the future", expiry=expiry_int, now=ts)

        price_int = require_positive(coerce_int(price, "price"), "price")
        content = normalize_address(content_ref, "content_ref")

        batch = Batch(
            manufacturer=manufacturer_addr,
            holder=manufacturer_addr,
            status=BATCH_STATUS_CREATED,
            expiry=expiry_int,
            price=price_int,
            content_ref=content,
            created_at=ts,
        )
        db.session.add(batch)
        db.session.flush()  # Get ID

        emit_event("BatchCreated", batch.id, ts, batch_id=batch.id, actor=manufacturer_addr)
        current_app.logger.info("Batch %s created by %s", batch.id, manufacturer_addr)
        return batch

    return run_with_retry(_op)


# =============================================================================
# CUSTODY TRANSFERS
# =============================================================================

def buy_as_distributor(
    caller: str,
    batch_id: int,
    offer_price: int | None = None,
    value: int | None = None,
    now: int | None = None,
) -> Batch:
    """
    Distributor buys a CREATED batch from its manufacturer.

    Payment (value, default = price) is held in escrow for the manufacturer.
    offer_price is the price the distributor will sell on at (default = price).

    Raises:
        UnauthorizedError: caller lacks an active DISTRIBUTOR role
        NotFoundError: unknown batch
        InvalidStateError: batch is not CREATED
        BatchExpiredError: batch expiry has passed
        InsufficientPaymentError: value < price
        ValidationError: offer_price below price or above the markup cap
    """
    def _op():
        distributor = require_active_role(caller, ROLE_DISTRIBUTOR, "buy_as_distributor")
        ts = _resolve_now(now)

        batch = _lock_batch(batch_id)
        if batch.status != BATCH_STATUS_CREATED:
            raise InvalidStateError(
                f"Cannot buy batch {batch.id} in {batch.status} status",
                batch_id=batch.id,
                status=batch.status,
            )
        _ensure_not_expired(batch, ts)

        paid = batch.price if value is None else coerce_int(value, "value")
        if paid < batch.price:
            raise InsufficientPaymentError(
                "Insufficient payment sent", sent=paid, required=batch.price,
            )
        offer = _resolve_offer_price(batch.price, coerce_optional_int(offer_price, "offer_price"))

        batch.holder = distributor
        batch.distributor = distributor
        batch.status = BATCH_STATUS_WITH_DISTRIBUTOR
        batch.offer_price = offer
        db.session.flush()

        entry = escrow_service.deposit(
            distributor, batch.manufacturer, batch.price, value=paid, batch_id=batch.id,
        )
        batch.manufacturer_escrow_id = entry.id
        db.session.flush()

        emit_event("DistributorPurchased", batch.id, distributor, batch_id=batch.id, actor=distributor)
        current_app.logger.info(
            "Batch %s bought by distributor %s for %s (offer %s)",
            batch.id, distributor, batch.price, offer,
        )
        return batch

    return run_with_retry(_op)


def buy_as_retailer(
    caller: str,
    batch_id: int,
    value: int | None = None,
    now: int | None = None,
) -> Batch:
    """
    Retailer buys a batch from its distributor at the offer price.

    Payment is escrowed for the distributor, and the manufacturer's escrow
    from the distributor purchase is released.

    Raises:
        UnauthorizedError: caller lacks an active RETAILER role
        NotFoundError: unknown batch
        InvalidStateError: batch is not WITH_DISTRIBUTOR
        BatchExpiredError: batch expiry has passed
        InsufficientPaymentError: value < offer price
    """
    def _op():
        retailer = require_active_role(caller, ROLE_RETAILER, "buy_as_retailer")
        ts = _resolve_now(now)

        batch = _lock_batch(batch_id)
        if batch.status != BATCH_STATUS_WITH_DISTRIBUTOR:
            raise InvalidStateError(
                f"Cannot buy batch {batch.id} in {batch.status} status",
                batch_id=batch.id,
                status=batch.status,
            )
        _ensure_not_expired(batch, ts)

        price = batch.offer_price if batch.offer_price is not None else batch.price
        paid = price if value is None else coerce_int(value, "value")
        if paid < price:
            raise InsufficientPaymentError(
                "Insufficient payment sent", sent=paid, required=price,
            )

        batch.holder = retailer
        batch.retailer = retailer
        batch.status = BATCH_STATUS_WITH_RETAILER
        db.session.flush()

        entry = escrow_service.deposit(
            retailer, batch.distributor, price, value=paid, batch_id=batch.id,
        )
        batch.distributor_escrow_id = entry.id
        db.session.flush()

        emit_event("RetailerPurchased", batch.id, retailer, batch_id=batch.id, actor=retailer)
        current_app.logger.info("Batch %s bought by retailer %s for %s", batch.id, retailer, price)

        # Manufacturer is settled now that custody has moved past the distributor
        manufacturer_entry = _escrow_entry(batch.manufacturer_escrow_id)
        if manufacturer_entry is not None and manufacturer_entry.outstanding:
            escrow_service.release(
                manufacturer_entry.payee,
                manufacturer_entry.amount,
                entry_id=manufacturer_entry.id,
            )
        return batch

    return run_with_retry(_op)


def confirm_receipt(caller: str, batch_id: int, now: int | None = None) -> Batch:
    """
    Retailer confirms the batch arrived; releases the distributor's escrow.

    Raises:
        UnauthorizedError: caller is not the batch's (active) retailer
        NotFoundError: unknown batch
        InvalidStateError: batch is not WITH_RETAILER or receipt already confirmed
    """
    def _op():
        retailer = require_active_role(caller, ROLE_RETAILER, "confirm_receipt")
        ts = _resolve_now(now)

        batch = _lock_batch(batch_id)
        if batch.status != BATCH_STATUS_WITH_RETAILER:
            raise InvalidStateError(
                f"Cannot confirm receipt of batch {batch.id} in {batch.status} status",
                batch_id=batch.id,
                status=batch.status,
            )
        if batch.retailer != retailer:
            log_security_event(
                address=retailer,
                event_type="PERMISSION_DENIED",
                success=False,
                action="confirm_receipt",
                role=ROLE_RETAILER,
                reason=f"Not the retailer of batch {batch.id}",
            )
            raise UnauthorizedError(
                retailer, ROLE_RETAILER, f"Account {retailer} is not the retailer of batch {batch.id}",
            )
        if batch.settled_at is not None:
            raise InvalidStateError(f"Receipt of batch {batch.id} already confirmed", batch_id=batch.id)

        batch.settled_at = ts
        db.session.flush()

        emit_event("ReceiptConfirmed", batch.id, retailer, batch_id=batch.id, actor=retailer)

        distributor_entry = _escrow_entry(batch.distributor_escrow_id)
        if distributor_entry is not None and distributor_entry.outstanding:
            escrow_service.release(
                distributor_entry.payee,
                distributor_entry.amount,
                entry_id=distributor_entry.id,
            )
        current_app.logger.info("Batch %s receipt confirmed by %s", batch.id, retailer)
        return batch

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_batch(batch_id: int) -> Batch:
    batch = db.session.get(Batch, batch_id)
    if not batch:
        raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)
    return batch


def get_batch_details(batch_id: int) -> dict:
    return get_batch(batch_id).to_dict()


def get_content_ref(batch_id: int) -> str:
    return get_batch(batch_id).content_ref


def list_batches(status: str | None = None, holder: str | None = None) -> list[Batch]:
    q = db.session.query(Batch)
    if status:
        status_code = status.strip().upper()
        if status_code not in BATCH_STATUSES:
            raise ValidationError(f"Unknown batch status: {status}")
        q = q.filter(Batch.status == status_code)
    if holder:
        q = q.filter(Batch.holder == normalize_address(holder, "holder"))
    return q.order_by(Batch.id.asc()).all()


def find_expired_batches(now: int | None = None) -> list[Batch]:
    """Batches past expiry that are still in the forward chain (automation trigger)."""
    ts = _resolve_now(now)
    return (
        db.session.query(Batch)
        .filter(Batch.expiry <= ts, Batch.status != BATCH_STATUS_RETURNED)
        .order_by(Batch.expiry.asc(), Batch.id.asc())
        .all()
    )


def get_batch_history(batch_id: int) -> list[LedgerEvent]:
    get_batch(batch_id)
    return list_events(batch_id=batch_id, limit=1000)
