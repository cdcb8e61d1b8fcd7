"""
Escrow vault tests.

Verifies:
- Deposits reject null parties and insufficient value; excess is returned
- Release pays the payee exactly once; a replay is AlreadyReleased
- Refund pays the payer back
- Payout callbacks cannot re-enter the vault
"""

import pytest

from supplychain.errors import (
    AlreadyReleasedError,
    InsufficientPaymentError,
    InvalidPartyError,
    InvalidStateError,
    NotFoundError,
    ReentrancyError,
    UnauthorizedError,
)
from supplychain.models import EscrowEntry, LedgerEvent, SecurityEvent
from supplychain.services import batch_service, escrow_service
from supplychain.validation import ValidationError


class TestDeposit:

    def test_deposit_creates_outstanding_entry(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        db_session.commit()

        assert entry.outstanding
        assert entry.amount == 100
        assert entry.payer == actors.distributor
        assert entry.payee == actors.manufacturer
        assert escrow_service.outstanding_total() == 100

        ev = db_session.query(LedgerEvent).filter_by(event_name="EscrowDeposited").one()
        assert ev.args == [entry.id, actors.distributor, actors.manufacturer, 100]

    def test_zero_payer_rejected(self, db_session, actors):
        with pytest.raises(InvalidPartyError) as exc:
            escrow_service.deposit(actors.zero, actors.manufacturer, 100)
        db_session.rollback()
        assert str(exc.value) == "Payer address cannot be zero"

    def test_zero_payee_rejected(self, db_session, actors):
        with pytest.raises(InvalidPartyError) as exc:
            escrow_service.deposit(actors.distributor, actors.zero, 100)
        db_session.rollback()
        assert str(exc.value) == "Payee address cannot be zero"

    def test_zero_value_rejected(self, db_session, actors):
        with pytest.raises(InsufficientPaymentError) as exc:
            escrow_service.deposit(actors.distributor, actors.manufacturer, 0)
        db_session.rollback()
        assert str(exc.value) == "Insufficient payment sent"
        assert db_session.query(EscrowEntry).count() == 0

    def test_value_below_amount_rejected(self, db_session, actors):
        with pytest.raises(InsufficientPaymentError):
            escrow_service.deposit(actors.distributor, actors.manufacturer, 100, value=99)
        db_session.rollback()

    def test_excess_value_returned_to_payer(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100, value=130)
        db_session.commit()

        assert entry.amount == 100
        assert escrow_service.get_balance(actors.distributor) == 30
        assert escrow_service.outstanding_total() == 100

    def test_strict_mode_requires_exact_value(self, app, db_session, actors, monkeypatch):
        monkeypatch.setitem(app.config, "ESCROW_STRICT_DEPOSIT", True)

        with pytest.raises(InsufficientPaymentError):
            escrow_service.deposit(actors.distributor, actors.manufacturer, 100, value=130)
        db_session.rollback()

        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100, value=100)
        db_session.commit()
        assert entry.outstanding

    def test_non_integer_amount_rejected(self, db_session, actors):
        with pytest.raises(ValidationError):
            escrow_service.deposit(actors.distributor, actors.manufacturer, 1.5)
        db_session.rollback()

    def test_unknown_batch_rejected(self, db_session, actors):
        with pytest.raises(NotFoundError):
            escrow_service.deposit(actors.outsider, actors.outsider, 1, batch_id=424_242)
        db_session.rollback()

        assert escrow_service.list_entries(payer=actors.outsider) == []
        assert db_session.query(LedgerEvent).filter_by(event_name="EscrowDeposited").count() == 0


class TestRelease:

    def test_release_pays_payee(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        released = escrow_service.release(actors.manufacturer, 100)
        db_session.commit()

        assert released.id == entry.id
        assert released.status == escrow_service.ESCROW_STATUS_RELEASED
        assert released.settled_at is not None
        assert escrow_service.get_balance(actors.manufacturer) == 100
        assert escrow_service.outstanding_total() == 0

        ev = db_session.query(LedgerEvent).filter_by(event_name="EscrowReleased").one()
        assert ev.args == [entry.id, actors.manufacturer, 100]

    def test_double_release_rejected(self, db_session, actors):
        escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        escrow_service.release(actors.manufacturer, 100)
        db_session.commit()

        with pytest.raises(AlreadyReleasedError):
            escrow_service.release(actors.manufacturer, 100)
        db_session.rollback()

        assert escrow_service.get_balance(actors.manufacturer) == 100

    def test_double_release_by_handle_rejected(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        escrow_service.release(actors.manufacturer, 100, entry_id=entry.id)
        db_session.commit()

        with pytest.raises(AlreadyReleasedError):
            escrow_service.release(actors.manufacturer, 100, entry_id=entry.id)
        db_session.rollback()

    def test_release_zero_payee_rejected(self, db_session, actors):
        with pytest.raises(InvalidPartyError) as exc:
            escrow_service.release(actors.zero, 0)
        db_session.rollback()
        assert str(exc.value) == "Payee address cannot be zero"

    def test_release_without_deposit_not_found(self, db_session, actors):
        with pytest.raises(NotFoundError):
            escrow_service.release(actors.manufacturer, 100)
        db_session.rollback()

    def test_release_oldest_matching_entry_first(self, db_session, actors):
        first = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        second = escrow_service.deposit(actors.retailer, actors.manufacturer, 100)
        db_session.commit()

        released = escrow_service.release(actors.manufacturer, 100)
        db_session.commit()

        assert released.id == first.id
        assert escrow_service.get_entry(second.id).outstanding

    def test_release_amount_mismatch_rejected(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        db_session.commit()

        with pytest.raises(ValidationError):
            escrow_service.release(actors.manufacturer, 50, entry_id=entry.id)
        db_session.rollback()

    def test_release_wrong_payee_rejected(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        db_session.commit()

        with pytest.raises(InvalidPartyError):
            escrow_service.release(actors.retailer, 100, entry_id=entry.id)
        db_session.rollback()

    def test_release_entry_by_handle(self, db_session, actors):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 70)
        escrow_service.release_entry(entry.id)
        db_session.commit()

        assert escrow_service.get_entry(entry.id).released


class TestRefund:

    def test_refund_pays_payer(self, db_session, actors):
        entry = escrow_service.deposit(actors.retailer, actors.distributor, 150)
        escrow_service.refund(entry.id)
        db_session.commit()

        refunded = escrow_service.get_entry(entry.id)
        assert refunded.status == escrow_service.ESCROW_STATUS_REFUNDED
        assert escrow_service.get_balance(actors.retailer) == 150
        assert escrow_service.get_balance(actors.distributor) == 0

    def test_refund_after_release_rejected(self, db_session, actors):
        entry = escrow_service.deposit(actors.retailer, actors.distributor, 150)
        escrow_service.release(actors.distributor, 150)
        db_session.commit()

        with pytest.raises(AlreadyReleasedError):
            escrow_service.refund(entry.id)
        db_session.rollback()

    def test_release_after_refund_rejected(self, db_session, actors):
        entry = escrow_service.deposit(actors.retailer, actors.distributor, 150)
        escrow_service.refund(entry.id)
        db_session.commit()

        with pytest.raises(AlreadyReleasedError):
            escrow_service.release(actors.distributor, 150)
        db_session.rollback()

    def test_refund_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            escrow_service.refund(999_999)
        db_session.rollback()

    def test_payer_cancels_direct_deposit(self, db_session, actors):
        entry = escrow_service.deposit(actors.outsider, actors.manufacturer, 40)
        escrow_service.cancel_deposit(actors.outsider, entry.id)
        db_session.commit()

        assert escrow_service.get_entry(entry.id).status == escrow_service.ESCROW_STATUS_REFUNDED
        assert escrow_service.get_balance(actors.outsider) == 40

    def test_admin_cancels_direct_deposit(self, db_session, setup_roles, actors):
        entry = escrow_service.deposit(actors.outsider, actors.manufacturer, 40)
        escrow_service.cancel_deposit(actors.admin, entry.id)
        db_session.commit()

        assert escrow_service.get_balance(actors.outsider) == 40
        assert escrow_service.get_balance(actors.admin) == 0

    def test_other_caller_cannot_cancel(self, db_session, setup_roles, actors):
        entry = escrow_service.deposit(actors.outsider, actors.manufacturer, 40)
        db_session.commit()

        with pytest.raises(UnauthorizedError):
            escrow_service.cancel_deposit(actors.manufacturer, entry.id)
        db_session.rollback()

        assert escrow_service.get_entry(entry.id).outstanding
        denial = db_session.query(SecurityEvent).filter_by(action="cancel_deposit").one()
        assert denial.address == actors.manufacturer

    def test_batch_entries_cannot_be_cancelled(self, db_session, distributed_batch, actors):
        entry_id = batch_service.get_batch(distributed_batch.id).manufacturer_escrow_id

        with pytest.raises(InvalidStateError):
            escrow_service.cancel_deposit(actors.distributor, entry_id)
        db_session.rollback()

        assert escrow_service.get_entry(entry_id).outstanding


class TestReentrancy:

    def test_payout_cannot_reenter_vault(self, app, db_session, actors, monkeypatch):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        db_session.commit()

        def reentrant_sink(address, amount):
            escrow_service.release(actors.manufacturer, 100, entry_id=entry.id)

        monkeypatch.setitem(app.extensions, "supplychain.payout", reentrant_sink)

        with pytest.raises(ReentrancyError):
            escrow_service.release(actors.manufacturer, 100, entry_id=entry.id)
        db_session.rollback()

        assert escrow_service.get_entry(entry.id).outstanding

    def test_entry_settled_before_payout(self, app, db_session, actors, monkeypatch):
        entry = escrow_service.deposit(actors.distributor, actors.manufacturer, 100)
        db_session.commit()
        seen = []

        def observing_sink(address, amount):
            seen.append((address, amount, db_session.get(EscrowEntry, entry.id).status))

        monkeypatch.setitem(app.extensions, "supplychain.payout", observing_sink)
        escrow_service.release(actors.manufacturer, 100)
        db_session.commit()

        assert seen == [(actors.manufacturer, 100, escrow_service.ESCROW_STATUS_RELEASED)]


class TestReads:

    def test_list_entries_filters(self, db_session, batch, actors):
        escrow_service.deposit(actors.distributor, actors.manufacturer, 100, batch_id=batch.id)
        escrow_service.deposit(actors.retailer, actors.distributor, 150, batch_id=batch.id)
        escrow_service.deposit(actors.retailer, actors.manufacturer, 10)
        db_session.commit()

        assert len(escrow_service.list_entries(batch_id=batch.id)) == 2
        assert len(escrow_service.list_entries(payee=actors.manufacturer)) == 2
        assert len(escrow_service.list_entries(payer=actors.retailer, status="outstanding")) == 2

    def test_get_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            escrow_service.get_entry(424242)
