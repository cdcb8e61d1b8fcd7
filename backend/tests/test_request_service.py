"""
Return request tests.

Verifies:
- Only the holder can file, while the purchase payment is still escrowed
- Approval refunds the requester and hands custody back to the seller
- Rejection restores the prior status and leaves escrow untouched
"""

import pytest

from supplychain.errors import InvalidStateError, NotFoundError, UnauthorizedError
from supplychain.services import batch_service, escrow_service, request_service
from supplychain.services.batch_service import (
    BATCH_STATUS_RETURNED,
    BATCH_STATUS_WITH_DISTRIBUTOR,
    BATCH_STATUS_WITH_RETAILER,
)
from supplychain.services.request_service import (
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
)
from supplychain.validation import ValidationError


class TestRequestReturn:

    def test_distributor_files_return(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, reason="Damaged", now=now)
        db_session.commit()

        assert req.status == REQUEST_STATUS_PENDING
        assert req.requester == actors.distributor
        assert req.counterparty == actors.manufacturer
        assert req.prior_status == BATCH_STATUS_WITH_DISTRIBUTOR
        assert batch_service.get_batch(distributed_batch.id).status == BATCH_STATUS_RETURNED

        names = [ev.event_name for ev in batch_service.get_batch_history(distributed_batch.id)]
        assert names[-1] == "ReturnRequested"

    def test_created_batch_cannot_be_returned(self, db_session, batch, actors, now):
        with pytest.raises(InvalidStateError):
            request_service.request_return(actors.manufacturer, batch.id, now=now)
        db_session.rollback()

    def test_non_holder_cannot_file(self, db_session, distributed_batch, actors, now):
        with pytest.raises(UnauthorizedError):
            request_service.request_return(actors.retailer, distributed_batch.id, now=now)
        db_session.rollback()

        assert batch_service.get_batch(distributed_batch.id).status == BATCH_STATUS_WITH_DISTRIBUTOR

    def test_second_request_rejected(self, db_session, distributed_batch, actors, now):
        request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.commit()

        with pytest.raises(InvalidStateError):
            request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.rollback()

        assert len(request_service.list_return_requests(batch_id=distributed_batch.id)) == 1

    def test_settled_batch_cannot_be_returned(self, db_session, retailed_batch, actors, now):
        batch_service.confirm_receipt(actors.retailer, retailed_batch.id, now=now)
        db_session.commit()

        with pytest.raises(InvalidStateError):
            request_service.request_return(actors.retailer, retailed_batch.id, now=now)
        db_session.rollback()

    def test_unknown_batch(self, db_session, setup_roles, actors, now):
        with pytest.raises(NotFoundError):
            request_service.request_return(actors.distributor, 55_555, now=now)
        db_session.rollback()

    def test_non_integer_timestamp_rejected(self, db_session, distributed_batch, actors):
        with pytest.raises(ValidationError):
            request_service.request_return(actors.distributor, distributed_batch.id, now="1.5")
        db_session.rollback()

        assert batch_service.get_batch(distributed_batch.id).status == BATCH_STATUS_WITH_DISTRIBUTOR


class TestResolveReturn:

    def test_counterparty_approves(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.commit()

        request_service.resolve_return(actors.manufacturer, req.id, approve=True, now=now + 5)
        db_session.commit()

        resolved = request_service.get_return_request(req.id)
        assert resolved.status == REQUEST_STATUS_APPROVED
        assert resolved.resolved_by == actors.manufacturer
        assert resolved.resolved_at == now + 5

        batch = batch_service.get_batch(distributed_batch.id)
        assert batch.status == BATCH_STATUS_RETURNED
        assert batch.holder == actors.manufacturer

        entry = escrow_service.get_entry(resolved.escrow_entry_id)
        assert entry.status == escrow_service.ESCROW_STATUS_REFUNDED
        assert escrow_service.get_balance(actors.distributor) == 100
        assert escrow_service.get_balance(actors.manufacturer) == 0

    def test_admin_rejects(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.commit()

        request_service.resolve_return(actors.admin, req.id, approve=False, now=now)
        db_session.commit()

        assert request_service.get_return_request(req.id).status == REQUEST_STATUS_REJECTED
        assert batch_service.get_batch(distributed_batch.id).status == BATCH_STATUS_WITH_DISTRIBUTOR
        assert escrow_service.get_balance(actors.distributor) == 0

        # Forward path resumes after rejection
        batch_service.buy_as_retailer(actors.retailer, distributed_batch.id, now=now)
        db_session.commit()
        assert batch_service.get_batch(distributed_batch.id).status == BATCH_STATUS_WITH_RETAILER

    def test_retailer_return_refunds_offer_price(self, db_session, retailed_batch, actors, now):
        req = request_service.request_return(actors.retailer, retailed_batch.id, now=now)
        db_session.commit()
        assert req.counterparty == actors.distributor

        request_service.resolve_return(actors.distributor, req.id, approve=True, now=now)
        db_session.commit()

        assert escrow_service.get_balance(actors.retailer) == 150
        assert batch_service.get_batch(retailed_batch.id).holder == actors.distributor

    def test_outsider_cannot_resolve(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.commit()

        with pytest.raises(UnauthorizedError):
            request_service.resolve_return(actors.outsider, req.id, approve=True, now=now)
        db_session.rollback()

        assert request_service.get_return_request(req.id).status == REQUEST_STATUS_PENDING

    def test_requester_cannot_resolve_own_request(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.commit()

        with pytest.raises(UnauthorizedError):
            request_service.resolve_return(actors.distributor, req.id, approve=True, now=now)
        db_session.rollback()

    def test_resolve_twice_rejected(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        request_service.resolve_return(actors.admin, req.id, approve=False, now=now)
        db_session.commit()

        with pytest.raises(InvalidStateError):
            request_service.resolve_return(actors.admin, req.id, approve=True, now=now)
        db_session.rollback()

    def test_resolve_rejects_non_integer_timestamp(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        db_session.commit()

        with pytest.raises(ValidationError):
            request_service.resolve_return(actors.admin, req.id, approve=True, now=True)
        db_session.rollback()

        assert request_service.get_return_request(req.id).status == REQUEST_STATUS_PENDING

    def test_resolution_event(self, db_session, distributed_batch, actors, now):
        req = request_service.request_return(actors.distributor, distributed_batch.id, now=now)
        request_service.resolve_return(actors.manufacturer, req.id, approve=True, now=now)
        db_session.commit()

        history = batch_service.get_batch_history(distributed_batch.id)
        resolved = [ev for ev in history if ev.event_name == "ReturnResolved"]
        assert resolved[0].args == [req.id, distributed_batch.id, True]
        assert history[-1].event_name == "EscrowRefunded"
