"""
Pytest fixtures for matmx backend tests.

Provides the test app on in-memory SQLite, a clean database per test,
role user factories, and login helpers.
"""

import shutil
import tempfile
from decimal import Decimal

import pytest
from matmx import create_app
from matmx.extensions import db
from matmx.models import Product
from matmx.services import auth_service, customer_service

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    upload_dir = tempfile.mkdtemp(prefix="matmx-uploads-")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_LOG_ROUNDS': 4,
        'JWT_SECRET': 'test-secret',
        'MAIL_SUPPRESS_SEND': True,
        'UPLOAD_FOLDER': upload_dir,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()

    shutil.rmtree(upload_dir, ignore_errors=True)


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
def make_user(db_session):
    """Factory: make_user(role, name=None, email=None) -> User (password PASSWORD)."""
    counter = {"n": 0}

    def _make(role, name=None, email=None, password=PASSWORD):
        counter["n"] += 1
        name = name or f"{role} {counter['n']}"
        email = email or f"{role.lower()}{counter['n']}@matmx.test"
        return auth_service.create_user(name, email, password, role)

    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("super_admin", name="Ada Admin")


@pytest.fixture(scope='function')
def rep(make_user):
    return make_user("sales_rep", name="Riley Rep")


@pytest.fixture(scope='function')
def other_rep(make_user):
    return make_user("sales_rep", name="Sam Seller")


@pytest.fixture(scope='function')
def inventory_manager(make_user):
    return make_user("inventory_manager", name="Ivy Inventory")


@pytest.fixture(scope='function')
def accountant(make_user):
    return make_user("accountant", name="Alex Accounts")


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(name=None, sku=None, stock=0, reorder_threshold=0, unit_price="10.00"):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            stock=stock,
            reorder_threshold=reorder_threshold,
            unit_price=Decimal(unit_price) if unit_price is not None else None,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(actor, name=..., email=...) -> Customer assigned to actor."""
    def _make(actor, name="Acme Corp", email="buyer@acme.test", **fields):
        patch = {"name": name, "email": email, **fields}
        return customer_service.create_customer(patch=patch, actor=actor)

    return _make


def get_auth_token(app, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user (separate client, so no cookie leaks)."""
    response = app.test_client().post('/api/login', json={
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(app):
    """login(user) -> Authorization headers for that user."""
    def _login(user, password=PASSWORD):
        token = get_auth_token(app, user.email, password)
        assert token, f"login failed for {user.email}"
        return auth_headers(token)

    return _login


@pytest.fixture(scope='function')
def admin_headers(login, admin):
    return login(admin)


@pytest.fixture(scope='function')
def rep_headers(login, rep):
    return login(rep)
