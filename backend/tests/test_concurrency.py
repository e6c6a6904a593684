"""
Concurrent sale submission against a file-backed SQLite database.

Verifies:
- Two sales racing for the last units never both succeed
- Stock never goes negative under contention
- Sales on different products both succeed
"""

import threading

import pytest

from storefront_pos import create_app
from storefront_pos.extensions import db
from storefront_pos.models import Product, ProductSize, Sale
from storefront_pos.services import sales_service
from storefront_pos.services.auth_service import create_user
from storefront_pos.services.stock_service import InsufficientStockError
from storefront_pos.validation import CatalogLineInput


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'STOCK_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()

        user = create_user("racer", "Password123!", rounds=4)
        for code, title, stock in [("RC-1", "Runner", 5), ("RC-2", "Jacket", 5)]:
            product = Product(title=title, code=code, price_cents=1000)
            db.session.add(product)
            db.session.flush()
            db.session.add(ProductSize(product_id=product.id, size_name="M", stock=stock))
        db.session.commit()
        app.config["RACER_ID"] = user.id

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def product_uuid(app, code):
    with app.app_context():
        return db.session.query(Product).filter_by(code=code).one().uuid


def stock_left(app, code):
    with app.app_context():
        product = db.session.query(Product).filter_by(code=code).one()
        return db.session.query(ProductSize).filter_by(product_id=product.id, size_name="M").one().stock


def race(app, carts):
    """Submit each (product_uuid, quantity) cart from its own thread; returns outcomes in order."""
    barrier = threading.Barrier(len(carts))
    outcomes = [None] * len(carts)

    def worker(index, uuid, quantity):
        with app.app_context():
            try:
                barrier.wait()
                sales_service.commit_sale(
                    items=[CatalogLineInput(product_uuid=uuid, size="M", quantity=quantity, unit_price_cents=1000)],
                    total_amount_cents=1000 * quantity,
                    payment_method="cash",
                    user_id=app.config["RACER_ID"],
                )
                outcomes[index] = "ok"
            except InsufficientStockError:
                outcomes[index] = "insufficient"
            except Exception as e:  # surfaced through the assertion below
                outcomes[index] = repr(e)
            finally:
                db.session.remove()

    threads = [
        threading.Thread(target=worker, args=(i, uuid, quantity))
        for i, (uuid, quantity) in enumerate(carts)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_two_sales_for_last_units_do_not_oversell(file_app):
    uuid = product_uuid(file_app, "RC-1")

    outcomes = race(file_app, [(uuid, 3), (uuid, 3)])

    assert sorted(outcomes) == ["insufficient", "ok"]
    assert stock_left(file_app, "RC-1") == 2
    with file_app.app_context():
        assert db.session.query(Sale).count() == 1


def test_many_single_unit_sales_stop_at_zero(file_app):
    uuid = product_uuid(file_app, "RC-1")

    outcomes = race(file_app, [(uuid, 1)] * 8)

    assert outcomes.count("ok") == 5
    assert outcomes.count("insufficient") == 3
    assert stock_left(file_app, "RC-1") == 0


def test_sales_on_different_products_both_commit(file_app):
    outcomes = race(file_app, [
        (product_uuid(file_app, "RC-1"), 4),
        (product_uuid(file_app, "RC-2"), 4),
    ])

    assert outcomes == ["ok", "ok"]
    assert stock_left(file_app, "RC-1") == 1
    assert stock_left(file_app, "RC-2") == 1
