# Overview: Service-layer operations for the role registry; encapsulates business logic and database work.

"""
Role Registry and Security Event Logging

WHY: Every custody transfer is gated by role membership. This module owns
which addresses hold which roles, which addresses are frozen, and the audit
trail of denied attempts.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit role grant
- Only ADMIN grants, revokes, freezes and unfreezes
- Freezing revokes every non-ADMIN role; unfreezing never restores them
- The frozen flag is independent of role membership and survives revocation
- Log denials only: successful checks are not logged
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import AlreadyAssignedError, InvalidAddressError, UnauthorizedError
from ..models import Participant, ParticipantRole, SecurityEvent
from ..roles import (
    ROLE_ADMIN,
    ROLE_MANUFACTURER,
    ROLE_DISTRIBUTOR,
    ROLE_RETAILER,
    is_admin_role,
    validate_role_code,
)
from ..validation import ValidationError, is_zero_address, normalize_address
from .concurrency import lock_for_update, run_with_retry
from .event_service import emit_event
from supplychain.time_utils import utcnow


def log_security_event(
    address: str | None,
    event_type: str,
    success: bool,
    action: str | None = None,
    role: str | None = None,
    reason: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    Committed immediately: the operation that triggered the denial is rolled
    back by its caller, the audit record must survive that rollback.

    event_type examples:
    - PERMISSION_DENIED
    - FROZEN_ACTOR_DENIED
    """
    event = SecurityEvent(
        address=address,
        event_type=event_type,
        action=action,
        role=role,
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


# =============================================================================
# READS
# =============================================================================

def _normalize_role(role: str) -> str:
    code = (role or "").strip().upper()
    if not validate_role_code(code):
        raise ValidationError(f"Unknown role: {role}")
    return code


def _get_participant(address: str) -> Participant | None:
    return db.session.query(Participant).filter_by(address=address).first()


def _ensure_participant(address: str) -> Participant:
    participant = lock_for_update(db.session.query(Participant).filter_by(address=address)).first()
    if participant:
        return participant
    participant = Participant(address=address, is_frozen=False)
    db.session.add(participant)
    db.session.flush()
    return participant


def has_role(address: str, role: str) -> bool:
    """Check if an address currently holds a role. Pure read."""
    address = normalize_address(address)
    role = _normalize_role(role)
    return (
        db.session.query(ParticipantRole.id)
        .join(Participant, Participant.id == ParticipantRole.participant_id)
        .filter(Participant.address == address, ParticipantRole.role == role)
        .first()
        is not None
    )


def is_frozen(address: str) -> bool:
    """Check whether an address is frozen. Unknown addresses are not frozen."""
    participant = _get_participant(normalize_address(address))
    return bool(participant and participant.is_frozen)


def get_roles(address: str) -> list[str]:
    """Sorted list of role codes held by an address."""
    participant = _get_participant(normalize_address(address))
    if not participant:
        return []
    return sorted(r.role for r in participant.roles)


def get_participant_summary(address: str) -> dict:
    address = normalize_address(address)
    participant = _get_participant(address)
    if not participant:
        return {"address": address, "roles": [], "is_frozen": False}
    return participant.to_dict()


# =============================================================================
# AUTHORIZATION GUARDS
# =============================================================================

def require_admin(caller: str, action: str) -> str:
    """Raise UnauthorizedError unless caller holds ADMIN. Returns the normalized caller."""
    caller = normalize_address(caller, "caller")
    if not has_role(caller, ROLE_ADMIN):
        log_security_event(
            address=caller,
            event_type="PERMISSION_DENIED",
            success=False,
            action=action,
            role=ROLE_ADMIN,
            reason=f"Missing role: {ROLE_ADMIN}",
        )
        raise UnauthorizedError(caller, ROLE_ADMIN)
    return caller


def require_active_role(address: str, role: str, action: str) -> str:
    """
    Require the address to hold `role` and not be frozen.

    ADMIN is exempt from the frozen check; every other role is suspended
    while the address is frozen.
    """
    address = normalize_address(address, "caller")
    role = _normalize_role(role)

    if not has_role(address, role):
        log_security_event(
            address=address,
            event_type="PERMISSION_DENIED",
            success=False,
            action=action,
            role=role,
            reason=f"Missing role: {role}",
        )
        raise UnauthorizedError(address, role)

    if not is_admin_role(role) and is_frozen(address):
        log_security_event(
            address=address,
            event_type="FROZEN_ACTOR_DENIED",
            success=False,
            action=action,
            role=role,
            reason="Address is frozen",
        )
        raise UnauthorizedError(address, role, f"Account {address} is frozen")

    return address


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================

def grant_role(caller: str, role: str, address: str) -> ParticipantRole:
    """
    Grant a role to an address (ADMIN only).

    Raises:
        UnauthorizedError: caller is not ADMIN
        InvalidAddressError: address is the zero address
        AlreadyAssignedError: address already holds the role
    """
    def _op():
        sender = require_admin(caller, "grant_role")
        role_code = _normalize_role(role)
        account = normalize_address(address)
        if is_zero_address(account):
            raise InvalidAddressError("Cannot grant a role to the zero address")

        participant = _ensure_participant(account)
        existing = db.session.query(ParticipantRole).filter_by(
            participant_id=participant.id,
            role=role_code,
        ).first()
        if existing:
            raise AlreadyAssignedError(role_code.capitalize(), account)

        assignment = ParticipantRole(
            role=role_code,
            granted_by=sender,
            granted_at=utcnow(),
        )
        participant.roles.append(assignment)
        db.session.flush()

        emit_event("RoleGranted", role_code, account, sender, actor=sender)
        return assignment

    return run_with_retry(_op)


def _remove_role(participant: Participant, role_code: str, sender: str) -> bool:
    assignment = db.session.query(ParticipantRole).filter_by(
        participant_id=participant.id,
        role=role_code,
    ).first()
    if not assignment:
        return False
    participant.roles.remove(assignment)
    db.session.flush()
    emit_event("RoleRevoked", role_code, participant.address, sender, actor=sender)
    return True


def revoke_role(caller: str, role: str, address: str) -> bool:
    """
    Revoke a role from an address (ADMIN only).

    No-op safe: returns False (and emits nothing) if the role wasn't held.
    """
    def _op():
        sender = require_admin(caller, "revoke_role")
        role_code = _normalize_role(role)
        account = normalize_address(address)

        participant = _get_participant(account)
        if not participant:
            return False
        return _remove_role(participant, role_code, sender)

    return run_with_retry(_op)


def freeze_address(caller: str, address: str) -> Participant:
    """
    Freeze an address and strip its non-ADMIN roles (ADMIN only).

    Idempotent: freezing a frozen address changes nothing and emits nothing.
    """
    def _op():
        sender = require_admin(caller, "freeze_address")
        account = normalize_address(address)
        if is_zero_address(account):
            raise InvalidAddressError("Cannot freeze the zero address")

        participant = _ensure_participant(account)

        for assignment in list(participant.roles):
            if assignment.role != ROLE_ADMIN:
                _remove_role(participant, assignment.role, sender)

        if participant.is_frozen:
            return participant

        participant.is_frozen = True
        participant.frozen_at = utcnow()
        participant.frozen_by = sender
        db.session.flush()

        emit_event("AddressFrozen", account, actor=sender)
        current_app.logger.info("Address %s frozen by %s", account, sender)
        return participant

    return run_with_retry(_op)


def unfreeze_address(caller: str, address: str) -> Participant:
    """
    Clear the frozen flag (ADMIN only). Previously held roles are NOT restored.
    """
    def _op():
        sender = require_admin(caller, "unfreeze_address")
        account = normalize_address(address)
        if is_zero_address(account):
            raise InvalidAddressError("Cannot unfreeze the zero address")

        participant = _ensure_participant(account)
        if not participant.is_frozen:
            return participant

        participant.is_frozen = False
        participant.frozen_at = None
        participant.frozen_by = None
        db.session.flush()

        emit_event("AddressUnfrozen", account, actor=sender)
        current_app.logger.info("Address %s unfrozen by %s", account, sender)
        return participant

    return run_with_retry(_op)


def bootstrap_admin(address: str) -> ParticipantRole | None:
    """
    Give the deployer the ADMIN role when no admin exists yet.

    Returns the new assignment, or None if an admin already exists.
    Idempotent: safe to run on every startup.
    """
    def _op():
        account = normalize_address(address)
        if is_zero_address(account):
            raise InvalidAddressError("Admin cannot be the zero address")

        existing_admin = db.session.query(ParticipantRole).filter_by(role=ROLE_ADMIN).first()
        if existing_admin:
            return None

        participant = _ensure_participant(account)
        assignment = ParticipantRole(
            role=ROLE_ADMIN,
            granted_by=account,
            granted_at=utcnow(),
        )
        participant.roles.append(assignment)
        db.session.flush()

        emit_event("RoleGranted", ROLE_ADMIN, account, account, actor=account)
        return assignment

    return run_with_retry(_op)


# =============================================================================
# CUSTODIAN SHORTCUTS
# =============================================================================

def add_manufacturer(caller: str, address: str) -> ParticipantRole:
    return grant_role(caller, ROLE_MANUFACTURER, address)


def add_distributor(caller: str, address: str) -> ParticipantRole:
    return grant_role(caller, ROLE_DISTRIBUTOR, address)


def add_retailer(caller: str, address: str) -> ParticipantRole:
    return grant_role(caller, ROLE_RETAILER, address)


def remove_manufacturer(caller: str, address: str) -> bool:
    return revoke_role(caller, ROLE_MANUFACTURER, address)


def remove_distributor(caller: str, address: str) -> bool:
    return revoke_role(caller, ROLE_DISTRIBUTOR, address)


def remove_retailer(caller: str, address: str) -> bool:
    return revoke_role(caller, ROLE_RETAILER, address)
