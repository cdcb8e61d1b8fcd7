from __future__ import annotations

from ..extensions import db
from supplychain.time_utils import to_utc_z


class EscrowEntry(db.Model):
    """
    Payment held in custody until a transfer condition is confirmed.

    LIFECYCLE:
    1. OUTSTANDING: Deposited, held by the vault
    2. RELEASED: Paid out to the payee
    3. REFUNDED: Paid back to the payer (approved return)

    INVARIANT: Settled at most once. The amount deposited is exactly the
    amount later paid out to a single party.
    """
    __tablename__ = "escrow_entries"
    __table_args__ = (
        db.Index("ix_escrow_entries_payee_status", "payee", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    payer = db.Column(db.String(42), nullable=False, index=True)
    payee = db.Column(db.String(42), nullable=False, index=True)
    amount = db.Column(db.BigInteger, nullable=False)

    # OUTSTANDING, RELEASED, REFUNDED
    status = db.Column(db.String(16), nullable=False, default="OUTSTANDING", index=True)

    # Batch this payment is for (None for direct vault deposits)
    batch_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def outstanding(self) -> bool:
        return self.status == "OUTSTANDING"

    @property
    def released(self) -> bool:
        return self.status == "RELEASED"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payer": self.payer,
            "payee": self.payee,
            "amount": self.amount,
            "status": self.status,
            "outstanding": self.outstanding,
            "released": self.released,
            "batch_id": self.batch_id,
            "created_at": to_utc_z(self.created_at),
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
        }


class Account(db.Model):
    """
    Native currency balance credited by vault payouts.

    WHY: Releases, refunds and overpayment change all land here; this is the
    default payout sink, so an address's balance is what it has been paid.
    """
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    address = db.Column(db.String(42), nullable=False, unique=True, index=True)
    balance = db.Column(db.BigInteger, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "balance": self.balance,
            "updated_at": to_utc_z(self.updated_at),
        }
