"""
Role registry tests.

Verifies:
- Only ADMIN grants, revokes, freezes and unfreezes
- Duplicate grants are rejected, revoking an unheld role is a no-op
- Freezing strips custodial roles; unfreezing never restores them
- Denied attempts land in security_events
"""

import pytest

from supplychain.errors import AlreadyAssignedError, InvalidAddressError, UnauthorizedError
from supplychain.models import LedgerEvent, SecurityEvent
from supplychain.roles import ROLE_ADMIN, ROLE_DISTRIBUTOR, ROLE_MANUFACTURER, ROLE_RETAILER
from supplychain.services import role_service
from supplychain.validation import ValidationError


def _event_names(db_session):
    return [ev.event_name for ev in db_session.query(LedgerEvent).order_by(LedgerEvent.id).all()]


class TestGrantAndRevoke:

    def test_grant_then_has_role(self, db_session, setup_roles, actors):
        assert role_service.has_role(actors.distributor, ROLE_DISTRIBUTOR)
        assert not role_service.has_role(actors.distributor, ROLE_RETAILER)
        assert role_service.get_roles(actors.admin) == [ROLE_ADMIN]

    def test_grant_emits_role_granted(self, db_session, setup_roles, actors):
        role_service.grant_role(actors.admin, ROLE_RETAILER, actors.outsider)
        db_session.commit()

        ev = db_session.query(LedgerEvent).order_by(LedgerEvent.id.desc()).first()
        assert ev.event_name == "RoleGranted"
        assert ev.args == [ROLE_RETAILER, actors.outsider, actors.admin]

    def test_addresses_are_case_insensitive(self, db_session, setup_roles, actors):
        upper = "0x" + "B" * 40
        role_service.add_retailer(actors.admin, upper)
        db_session.commit()

        assert role_service.has_role(upper.lower(), ROLE_RETAILER)

    def test_duplicate_grant_rejected(self, db_session, setup_roles, actors):
        with pytest.raises(AlreadyAssignedError) as exc:
            role_service.add_distributor(actors.admin, actors.distributor)
        db_session.rollback()

        assert str(exc.value) == f"Distributor {actors.distributor} already exists"

    def test_grant_to_zero_address_rejected(self, db_session, setup_roles, actors):
        with pytest.raises(InvalidAddressError):
            role_service.grant_role(actors.admin, ROLE_MANUFACTURER, actors.zero)
        db_session.rollback()

    def test_unknown_role_rejected(self, db_session, setup_roles, actors):
        with pytest.raises(ValidationError):
            role_service.grant_role(actors.admin, "AUDITOR", actors.outsider)
        db_session.rollback()

    def test_malformed_address_rejected(self, db_session, setup_roles, actors):
        with pytest.raises(ValidationError):
            role_service.grant_role(actors.admin, ROLE_RETAILER, "not-an-address")
        db_session.rollback()

    def test_non_admin_cannot_grant(self, db_session, setup_roles, actors):
        with pytest.raises(UnauthorizedError) as exc:
            role_service.grant_role(actors.manufacturer, ROLE_DISTRIBUTOR, actors.outsider)
        db_session.rollback()

        assert exc.value.address == actors.manufacturer
        assert exc.value.role == ROLE_ADMIN
        assert not role_service.has_role(actors.outsider, ROLE_DISTRIBUTOR)

        denial = db_session.query(SecurityEvent).filter_by(address=actors.manufacturer).one()
        assert denial.event_type == "PERMISSION_DENIED"
        assert denial.action == "grant_role"
        assert denial.success is False

    def test_revoke_removes_role(self, db_session, setup_roles, actors):
        assert role_service.remove_distributor(actors.admin, actors.distributor) is True
        db_session.commit()

        assert not role_service.has_role(actors.distributor, ROLE_DISTRIBUTOR)
        ev = db_session.query(LedgerEvent).order_by(LedgerEvent.id.desc()).first()
        assert ev.event_name == "RoleRevoked"
        assert ev.args == [ROLE_DISTRIBUTOR, actors.distributor, actors.admin]

    def test_revoke_unheld_role_is_noop(self, db_session, setup_roles, actors):
        before = _event_names(db_session)

        assert role_service.remove_manufacturer(actors.admin, actors.retailer) is False
        assert role_service.revoke_role(actors.admin, ROLE_RETAILER, actors.outsider) is False
        db_session.commit()

        assert _event_names(db_session) == before

    def test_role_shortcuts_round_trip(self, db_session, setup_roles, actors):
        role_service.add_manufacturer(actors.admin, actors.outsider)
        db_session.commit()
        assert role_service.has_role(actors.outsider, ROLE_MANUFACTURER)

        assert role_service.remove_retailer(actors.admin, actors.retailer) is True
        db_session.commit()
        assert not role_service.has_role(actors.retailer, ROLE_RETAILER)

    def test_non_admin_cannot_revoke(self, db_session, setup_roles, actors):
        with pytest.raises(UnauthorizedError):
            role_service.revoke_role(actors.retailer, ROLE_DISTRIBUTOR, actors.distributor)
        db_session.rollback()

        assert role_service.has_role(actors.distributor, ROLE_DISTRIBUTOR)


class TestFreeze:

    def test_freeze_strips_roles(self, db_session, setup_roles, actors):
        role_service.add_retailer(actors.admin, actors.distributor)
        role_service.freeze_address(actors.admin, actors.distributor)
        db_session.commit()

        assert role_service.is_frozen(actors.distributor)
        assert role_service.get_roles(actors.distributor) == []
        names = _event_names(db_session)
        assert names[-3:] == ["RoleRevoked", "RoleRevoked", "AddressFrozen"]

    def test_freeze_unknown_address_creates_frozen_participant(self, db_session, setup_roles, actors):
        role_service.freeze_address(actors.admin, actors.outsider)
        db_session.commit()

        assert role_service.is_frozen(actors.outsider)
        assert role_service.get_participant_summary(actors.outsider)["is_frozen"] is True

    def test_freeze_is_idempotent(self, db_session, setup_roles, actors):
        role_service.freeze_address(actors.admin, actors.retailer)
        db_session.commit()
        before = _event_names(db_session)

        role_service.freeze_address(actors.admin, actors.retailer)
        db_session.commit()

        assert role_service.is_frozen(actors.retailer)
        assert _event_names(db_session) == before

    def test_unfreeze_does_not_restore_roles(self, db_session, setup_roles, actors):
        role_service.freeze_address(actors.admin, actors.manufacturer)
        role_service.unfreeze_address(actors.admin, actors.manufacturer)
        db_session.commit()

        assert not role_service.is_frozen(actors.manufacturer)
        assert not role_service.has_role(actors.manufacturer, ROLE_MANUFACTURER)
        assert _event_names(db_session)[-1] == "AddressUnfrozen"

    def test_frozen_flag_survives_regrant(self, db_session, setup_roles, actors):
        role_service.freeze_address(actors.admin, actors.distributor)
        role_service.add_distributor(actors.admin, actors.distributor)
        db_session.commit()

        assert role_service.has_role(actors.distributor, ROLE_DISTRIBUTOR)
        assert role_service.is_frozen(actors.distributor)

        with pytest.raises(UnauthorizedError):
            role_service.require_active_role(actors.distributor, ROLE_DISTRIBUTOR, "buy_as_distributor")
        db_session.rollback()

        denial = db_session.query(SecurityEvent).filter_by(address=actors.distributor).one()
        assert denial.event_type == "FROZEN_ACTOR_DENIED"

    def test_frozen_admin_keeps_admin(self, db_session, setup_roles, actors):
        role_service.freeze_address(actors.admin, actors.admin)
        db_session.commit()

        assert role_service.has_role(actors.admin, ROLE_ADMIN)
        role_service.add_retailer(actors.admin, actors.outsider)
        db_session.commit()
        assert role_service.has_role(actors.outsider, ROLE_RETAILER)

    def test_zero_address_cannot_be_frozen_or_unfrozen(self, db_session, setup_roles, actors):
        with pytest.raises(InvalidAddressError) as exc:
            role_service.freeze_address(actors.admin, actors.zero)
        db_session.rollback()
        assert str(exc.value) == "Cannot freeze the zero address"

        with pytest.raises(InvalidAddressError) as exc:
            role_service.unfreeze_address(actors.admin, actors.zero)
        db_session.rollback()
        assert str(exc.value) == "Cannot unfreeze the zero address"

    def test_non_admin_cannot_freeze(self, db_session, setup_roles, actors):
        with pytest.raises(UnauthorizedError):
            role_service.freeze_address(actors.distributor, actors.retailer)
        db_session.rollback()

        assert not role_service.is_frozen(actors.retailer)
        assert role_service.has_role(actors.retailer, ROLE_RETAILER)


class TestBootstrap:

    def test_bootstrap_only_once(self, db_session, actors):
        assert role_service.bootstrap_admin(actors.admin) is not None
        db_session.commit()

        assert role_service.bootstrap_admin(actors.outsider) is None
        db_session.commit()

        assert role_service.has_role(actors.admin, ROLE_ADMIN)
        assert not role_service.has_role(actors.outsider, ROLE_ADMIN)
