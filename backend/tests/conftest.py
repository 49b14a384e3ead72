"""
Pytest fixtures for the Toko Beras ledger tests.

Provides a session-wide app on in-memory SQLite, a per-test table wipe,
the default accounts and a few products and employees.
"""

from decimal import Decimal

import pytest

from tokoberas import create_app
from tokoberas.extensions import db
from tokoberas.models import FinancialAccount, Product, User
from tokoberas.services import account_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def accounts(db_session):
    """Default accounts keyed by code."""
    account_service.seed_default_accounts()
    return {a.code: a for a in db_session.query(FinancialAccount).all()}


def set_balance(account: FinancialAccount, amount) -> None:
    """Give an account an opening balance (test setup only)."""
    account.opening_balance = Decimal(str(amount))
    account.current_balance = Decimal(str(amount))
    db.session.commit()


def make_product(code="BR-001", name="Beras Pandan Wangi 5kg", stock=100, purchase_price=10000,
                 selling_price=15000, min_stock=5) -> Product:
    product = Product(
        code=code,
        name=name,
        category="beras",
        unit="karung",
        stock=stock,
        purchase_price=Decimal(str(purchase_price)),
        selling_price=Decimal(str(selling_price)),
        min_stock=min_stock,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """Product with 100 units on hand, cost 10.000, price 15.000."""
    return make_product()


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(name="Siti Kasir", username="siti", role="kasir", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def employees(db_session):
    """One active employee per paid role plus an owner and a customer (not paid)."""
    users = [
        User(name="Andi Admin", username="andi", role="admin"),
        User(name="Budi Karyawan", username="budi", role="karyawan"),
        User(name="Citra Kasir", username="citra", role="kasir"),
        User(name="Pak Owner", username="owner", role="owner"),
        User(name="Dewi Pelanggan", username="dewi", role="pelanggan"),
    ]
    db_session.add_all(users)
    db_session.commit()
    return {u.username: u for u in users}
