"""
Pytest fixtures for booking/ledger backend tests.

Provides test database setup, two tenants for isolation checks, and the
catalogue rows most tests book or sell against.
"""

from datetime import datetime

import pytest
from booking_ledger import create_app
from booking_ledger.extensions import db
from booking_ledger.models import (
    Client,
    PaymentMethod,
    Product,
    Service,
    ServicePackage,
    Technician,
    Tenant,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'WRITE_RETRY_ATTEMPTS': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


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
def tenant_a(db_session):
    tenant = Tenant(name="Studio A", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    tenant = Tenant(name="Studio B", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def technician(db_session, tenant_a):
    tech = Technician(tenant_id=tenant_a.id, name="Carla", is_active=True)
    db_session.add(tech)
    db_session.commit()
    return tech


@pytest.fixture(scope='function')
def other_technician(db_session, tenant_a):
    tech = Technician(tenant_id=tenant_a.id, name="Bruna", is_active=True)
    db_session.add(tech)
    db_session.commit()
    return tech


@pytest.fixture(scope='function')
def client_ana(db_session, tenant_a):
    row = Client(tenant_id=tenant_a.id, first_name="Ana", last_name="Souza", phone="11999990000")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def client_bia(db_session, tenant_a):
    row = Client(tenant_id=tenant_a.id, first_name="Bia", last_name="Lima")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def manicure(db_session, tenant_a):
    """60-minute service."""
    service = Service(tenant_id=tenant_a.id, name="Manicure", price_cents=4000, duration_minutes=60)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def gel_nails(db_session, tenant_a):
    """90-minute service."""
    service = Service(tenant_id=tenant_a.id, name="Gel nails", price_cents=9000, duration_minutes=90)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def undated_service(db_session, tenant_a):
    """Service with no duration configured."""
    service = Service(tenant_id=tenant_a.id, name="Consulta", price_cents=0, duration_minutes=None)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def product(db_session, tenant_a):
    """Product with no stock, cost R$5.00, price R$12.00."""
    row = Product(
        tenant_id=tenant_a.id,
        name="Esmalte Vermelho",
        price_cents=1200,
        cost_price_cents=500,
        stock_quantity=0,
        is_active=True,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    row = Product(tenant_id=tenant_b.id, name="Base B", price_cents=800, cost_price_cents=300, stock_quantity=0)
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def pix(db_session, tenant_a):
    row = PaymentMethod(tenant_id=tenant_a.id, name="PIX")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def package(db_session, tenant_a):
    row = ServicePackage(tenant_id=tenant_a.id, name="10 Manicures", price_cents=35000)
    db_session.add(row)
    db_session.commit()
    return row


def at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    """UTC-naive instant on 2030-03-<day>."""
    return datetime(2030, 3, day, hour, minute)


def tenant_headers(tenant) -> dict:
    """Helper to create tenant context headers."""
    return {'X-Tenant-Id': str(tenant.id)}
