from __future__ import annotations

from ..extensions import db
from supplychain.time_utils import to_utc_z, timestamp_to_utc_z


class Batch(db.Model):
    """
    A trackable lot of product moving through custody.

    LIFECYCLE:
    1. CREATED: Manufacturer created the batch and holds it
    2. WITH_DISTRIBUTOR: Distributor bought it; payment escrowed for the manufacturer
    3. WITH_RETAILER: Retailer bought it; manufacturer paid, payment escrowed for the distributor
    4. RETURNED: A return request was filed against it (see ReturnRequest)

    DESIGN PRINCIPLES:
    - id is a monotonically increasing integer and is never reused
    - manufacturer is immutable once set and never the zero address
    - price is fixed at creation; offer_price is the distributor's resale price
    - expiry and created_at are unix seconds (ledger time), not DateTimes
    - Escrow entries are referenced, never mutated, from here
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.Index("ix_batches_status_holder", "status", "holder"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    manufacturer = db.Column(db.String(42), nullable=False, index=True)
    holder = db.Column(db.String(42), nullable=False, index=True)
    distributor = db.Column(db.String(42), nullable=True, index=True)
    retailer = db.Column(db.String(42), nullable=True, index=True)

    # CREATED, WITH_DISTRIBUTOR, WITH_RETAILER, RETURNED
    status = db.Column(db.String(24), nullable=False, default="CREATED", index=True)

    # Unix seconds; strictly in the future at creation
    expiry = db.Column(db.BigInteger, nullable=False, index=True)

    # Base currency units (integers only)
    price = db.Column(db.BigInteger, nullable=False)
    offer_price = db.Column(db.BigInteger, nullable=True)

    # Content reference slot (IPFS-style identifier stored as an address)
    content_ref = db.Column(db.String(42), nullable=False)

    manufacturer_escrow_id = db.Column(db.Integer, db.ForeignKey("escrow_entries.id"), nullable=True)
    distributor_escrow_id = db.Column(db.Integer, db.ForeignKey("escrow_entries.id"), nullable=True)

    created_at = db.Column(db.BigInteger, nullable=False)
    settled_at = db.Column(db.BigInteger, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    manufacturer_escrow = db.relationship("EscrowEntry", foreign_keys=[manufacturer_escrow_id])
    distributor_escrow = db.relationship("EscrowEntry", foreign_keys=[distributor_escrow_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "manufacturer": self.manufacturer,
            "holder": self.holder,
            "distributor": self.distributor,
            "retailer": self.retailer,
            "status": self.status,
            "expiry": self.expiry,
            "expiry_at": timestamp_to_utc_z(self.expiry),
            "price": self.price,
            "offer_price": self.offer_price,
            "content_ref": self.content_ref,
            "manufacturer_escrow_id": self.manufacturer_escrow_id,
            "distributor_escrow_id": self.distributor_escrow_id,
            "created_at": self.created_at,
            "settled_at": self.settled_at,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class ReturnRequest(db.Model):
    """
    Return (dispute) request against a batch already in custody downstream.

    LIFECYCLE:
    1. PENDING: Holder asked to return the batch; batch is RETURNED meanwhile
    2. APPROVED: Escrowed payment refunded to the requester, custody back to the seller
    3. REJECTED: Batch restored to prior_status, escrow untouched

    Funds only move on APPROVED.
    """
    __tablename__ = "return_requests"
    __table_args__ = (
        db.Index("ix_return_requests_batch_status", "batch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=False, index=True)

    requester = db.Column(db.String(42), nullable=False)
    # Seller on the other side of the escrow entry being disputed
    counterparty = db.Column(db.String(42), nullable=False)

    reason = db.Column(db.Text, nullable=True)

    # Status the batch had when the request was filed (restored on rejection)
    prior_status = db.Column(db.String(24), nullable=False)
    escrow_entry_id = db.Column(db.Integer, db.ForeignKey("escrow_entries.id"), nullable=False)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    resolved_by = db.Column(db.String(42), nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False)
    resolved_at = db.Column(db.BigInteger, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    batch = db.relationship("Batch", backref=db.backref("return_requests", lazy=True))
    escrow_entry = db.relationship("EscrowEntry")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "requester": self.requester,
            "counterparty": self.counterparty,
            "reason": self.reason,
            "prior_status": self.prior_status,
            "escrow_entry_id": self.escrow_entry_id,
            "status": self.status,
            "resolved_by": self.resolved_by,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }
