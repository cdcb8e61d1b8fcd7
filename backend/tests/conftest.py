"""
Pytest fixtures for supply chain ledger tests.

Provides test database setup, participant addresses with roles, and test client.
"""

from types import SimpleNamespace

import pytest
from supplychain import create_app
from supplychain.extensions import db
from supplychain.roles import ROLE_DISTRIBUTOR, ROLE_MANUFACTURER, ROLE_RETAILER
from supplychain.services import batch_service, role_service
from supplychain.validation import ZERO_ADDRESS


NOW = 1_700_000_000
ONE_DAY = 86_400


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SUPPLYCHAIN_ADMIN_ADDRESS': None,
        'ESCROW_STRICT_DEPOSIT': False,
        'MAX_DISTRIBUTOR_MARKUP_BPS': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def now():
    """Fixed ledger time (unix seconds)."""
    return NOW


@pytest.fixture
def actors():
    """One address per participant in the custody chain."""
    return SimpleNamespace(
        admin="0x" + "a" * 40,
        manufacturer="0x" + "1" * 40,
        distributor="0x" + "2" * 40,
        retailer="0x" + "3" * 40,
        outsider="0x" + "9" * 40,
        other_retailer="0x" + "4" * 40,
        content_ref="0x" + "c" * 40,
        zero=ZERO_ADDRESS,
    )


@pytest.fixture(scope='function')
def setup_roles(db_session, actors):
    """Bootstrap the admin and grant one address per custodial role."""
    role_service.bootstrap_admin(actors.admin)
    role_service.grant_role(actors.admin, ROLE_MANUFACTURER, actors.manufacturer)
    role_service.grant_role(actors.admin, ROLE_DISTRIBUTOR, actors.distributor)
    role_service.grant_role(actors.admin, ROLE_RETAILER, actors.retailer)
    db_session.commit()
    return actors


@pytest.fixture(scope='function')
def batch(db_session, setup_roles, actors, now):
    """A CREATED batch priced at 100, expiring in one day."""
    created = batch_service.create_batch(
        caller=actors.manufacturer,
        manufacturer=actors.manufacturer,
        expiry=now + ONE_DAY,
        price=100,
        content_ref=actors.content_ref,
        now=now,
    )
    db_session.commit()
    return created


@pytest.fixture(scope='function')
def distributed_batch(db_session, batch, actors, now):
    """Batch bought by the distributor at 100 with an offer price of 150."""
    batch_service.buy_as_distributor(actors.distributor, batch.id, offer_price=150, value=100, now=now)
    db_session.commit()
    return batch


@pytest.fixture(scope='function')
def retailed_batch(db_session, distributed_batch, actors, now):
    """Batch bought on by the retailer at the offer price (150)."""
    batch_service.buy_as_retailer(actors.retailer, distributed_batch.id, value=150, now=now)
    db_session.commit()
    return distributed_batch
