"""
Pytest fixtures for Lama Gest backend tests.

Provides an in-memory database, a per-test clean slate, the HTTP test client
and small factories for products and clients.
"""

import pytest
from lamagest import create_app
from lamagest.extensions import db
from lamagest.services import client_service, product_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MOVEMENT_REVERSAL_WINDOW_HOURS': 24,
        'COMMIT_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data (schema kept) before each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='function')
def product_factory(db_session):
    """Create products through the catalog service (ids prod-001, prod-002, ...)."""
    counter = {"n": 0}

    def _make(name=None, *, price_cents=1000, quantity=0, **extra):
        counter["n"] += 1
        payload = {
            "name": name or f"Product {counter['n']}",
            "price_cents": price_cents,
            "quantity": quantity,
        }
        payload.update(extra)
        return product_service.create_product(payload)

    return _make


@pytest.fixture(scope='function')
def client_record(db_session):
    """A saved client for invoice tests."""
    return client_service.create_client({"name": "Atelier Benali", "phone": "0550 00 00 00", "location": "Oran"})
