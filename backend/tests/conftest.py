"""
Pytest fixtures for storefront POS backend tests.

Provides test database setup, operator accounts, a small catalog and a test client.
"""

import pytest
from storefront_pos import create_app
from storefront_pos.extensions import db
from storefront_pos.models import Category, Manufacturer, Product, ProductSize
from storefront_pos.models.auth import ROLE_ADMIN, ROLE_EMPLOYEE, PERM_ACCESS_INVENTORY
from storefront_pos.services.auth_service import create_user
from storefront_pos.services import session_service

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STOCK_RETRY_BACKOFF': 0.0,
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
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin", TEST_PASSWORD, role=ROLE_ADMIN, rounds=4)


@pytest.fixture(scope='function')
def employee_user(db_session):
    """Employee with no permission flags."""
    return create_user("till1", TEST_PASSWORD, role=ROLE_EMPLOYEE, rounds=4)


@pytest.fixture(scope='function')
def inventory_user(db_session):
    """Employee allowed to edit stock."""
    return create_user(
        "stockroom", TEST_PASSWORD, role=ROLE_EMPLOYEE,
        permissions={PERM_ACCESS_INVENTORY: True}, rounds=4,
    )


def make_product(db_session, *, title, code, price_cents, sizes=(), **kwargs):
    """Create a product with (size_name, stock) rows."""
    product = Product(title=title, code=code, price_cents=price_cents, **kwargs)
    db_session.add(product)
    db_session.flush()
    for size_name, stock in sizes:
        db_session.add(ProductSize(product_id=product.id, size_name=size_name, stock=stock))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def catalog(db_session):
    category = Category(name="Shirts")
    manufacturer = Manufacturer(name="Acme Apparel")
    db_session.add_all([category, manufacturer])
    db_session.commit()
    return {"category": category, "manufacturer": manufacturer}


@pytest.fixture(scope='function')
def shirt(db_session, catalog):
    """Shirt priced 1000 cents with size M stock 5."""
    return make_product(
        db_session, title="Shirt", code="SH-001", price_cents=1000, sizes=[("M", 5)],
        category_id=catalog["category"].id, manufacturer_id=catalog["manufacturer"].id,
        image="shirt.jpg", full_size_image="shirt_full.jpg",
    )


@pytest.fixture(scope='function')
def hat(db_session):
    """Hat priced 500 cents with sizes S stock 2 and L stock 0."""
    return make_product(db_session, title="Hat", code="HT-001", price_cents=500, sizes=[("S", 2), ("L", 0)])


@pytest.fixture(scope='function')
def gift_card(db_session):
    """Product with no sizes: untracked stock."""
    return make_product(db_session, title="Gift Card", code="GC-001", price_cents=2500)


def token_for(user) -> str:
    _session, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(token_for(admin_user))


@pytest.fixture(scope='function')
def employee_headers(employee_user):
    return auth_headers(token_for(employee_user))


@pytest.fixture(scope='function')
def inventory_headers(inventory_user):
    return auth_headers(token_for(inventory_user))
