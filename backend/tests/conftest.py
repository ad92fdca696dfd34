"""
Pytest fixtures for shopsync backend tests.

Provides an in-memory database, two shops with their users, stocked
products, customers and an authenticated test client.
"""

import pytest

from shopsync import create_app
from shopsync.extensions import db
from shopsync.models import Customer, Product, Shop, Stock
from shopsync.services import auth_service
from shopsync.services.session_service import system_context


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
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
def shop_a(db_session):
    shop = Shop(name="Downtown", location="Main St 1")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_b(db_session):
    shop = Shop(name="Harbour", location="Pier 4")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def admin(db_session, shop_a):
    return auth_service.create_user("admin", "admin@example.com", PASSWORD, role="admin", shop_id=shop_a.id)


@pytest.fixture(scope='function')
def manager(db_session, shop_a):
    return auth_service.create_user("manager", "manager@example.com", PASSWORD, role="manager", shop_id=shop_a.id)


@pytest.fixture(scope='function')
def clerk(db_session, shop_a):
    """Salesperson affiliated to shop A only."""
    return auth_service.create_user("clerk", "clerk@example.com", PASSWORD, role="salesperson", shop_id=shop_a.id)


@pytest.fixture(scope='function')
def ctx(manager):
    """Service-level context acting as the shop A manager."""
    return system_context(manager)


def _stocked_product(db_session, shop, name, barcode, price, quantity):
    product = Product(name=name, barcode=barcode, price=price)
    db_session.add(product)
    db_session.flush()
    db_session.add(Stock(shop_id=shop.id, product_id=product.id, quantity=quantity))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, shop_a):
    """Product sold by shop A, 10 units on hand."""
    return _stocked_product(db_session, shop_a, "Espresso beans", "400100", "12.50", 10)


@pytest.fixture(scope='function')
def product_b(db_session, shop_b):
    """Product sold by shop B only."""
    return _stocked_product(db_session, shop_b, "Green tea", "400200", "4.00", 20)


@pytest.fixture(scope='function')
def customer_a(db_session, shop_a):
    customer = Customer(shop_id=shop_a.id, name="Ada Client", phone="555-0100", credit_limit="2000.00")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, shop_b):
    customer = Customer(shop_id=shop_b.id, name="Bo Client")
    db_session.add(customer)
    db_session.commit()
    return customer


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username))


@pytest.fixture(scope='function')
def clerk_headers(client, clerk):
    return auth_headers(get_auth_token(client, clerk.username))


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture(scope='function')
def login(client):
    """Log a user in; returns Authorization headers, or None on failure."""
    def _login(username: str, password: str = PASSWORD):
        token = get_auth_token(client, username, password)
        return auth_headers(token) if token else None
    return _login
