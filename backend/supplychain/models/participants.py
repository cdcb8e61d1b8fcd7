from __future__ import annotations

from ..extensions import db
from supplychain.time_utils import to_utc_z


class Participant(db.Model):
    """
    A recognized account address.

    WHY: The frozen flag has to outlive role membership, so it lives on its
    own row rather than on the role assignments. A participant row is created
    on first grant (or first freeze) and is never deleted.
    """
    __tablename__ = "participants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Canonical lower-case 0x address
    address = db.Column(db.String(42), nullable=False, unique=True, index=True)

    is_frozen = db.Column(db.Boolean, nullable=False, default=False, index=True)
    frozen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    frozen_by = db.Column(db.String(42), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "address": self.address,
            "roles": sorted(r.role for r in self.roles),
            "is_frozen": self.is_frozen,
            "frozen_at": to_utc_z(self.frozen_at) if self.frozen_at else None,
            "frozen_by": self.frozen_by,
            "created_at": to_utc_z(self.created_at),
        }


class ParticipantRole(db.Model):
    """
    Participant-Role association.

    A row exists iff the participant currently holds the role.
    Revoking deletes the row; history is kept in ledger_events.
    """
    __tablename__ = "participant_roles"
    __table_args__ = (
        db.UniqueConstraint("participant_id", "role", name="uq_participant_roles"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey("participants.id"), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False, index=True)  # ADMIN, MANUFACTURER, DISTRIBUTOR, RETAILER

    granted_by = db.Column(db.String(42), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    participant = db.relationship("Participant", backref=db.backref("roles", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "participant_id": self.participant_id,
            "role": self.role,
            "granted_by": self.granted_by,
            "granted_at": to_utc_z(self.granted_at),
        }


class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Track denied role checks so unauthorized attempts are visible even
    though the rejected operation itself is rolled back.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_address_type", "address", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    address = db.Column(db.String(42), nullable=True, index=True)  # Nullable for anonymous

    # Event classification
    event_type = db.Column(db.String(64), nullable=False, index=True)  # PERMISSION_DENIED, FROZEN_ACTOR_DENIED
    action = db.Column(db.String(64), nullable=True)  # e.g., "create_batch"
    role = db.Column(db.String(32), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "address": self.address,
            "event_type": self.event_type,
            "action": self.action,
            "role": self.role,
            "success": self.success,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
