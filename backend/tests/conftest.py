"""
Pytest fixtures for gift ledger backend tests.

Provides test database setup, account/profile/booking factories, and an
authenticated test client helper.
"""

import pytest
from giftledger import create_app
from giftledger.extensions import db
from giftledger.models import Booking, FanPost
from giftledger.models.auth import ROLE_ADMIN, ROLE_CLIENT, ROLE_LADY
from giftledger.models.directory import BOOKING_STATUS_COMPLETED
from giftledger.services import credit_service, gift_service
from giftledger.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LEDGER_RETRY_ATTEMPTS': 1,
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
def gift_types(db_session):
    """Seed the default gift catalog."""
    gift_service.seed_gift_types()
    return {t.slug: t for t in gift_service.list_gift_types()}


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: create an account, optionally funded through the ledger."""
    counter = {"n": 0}

    def _make(role=ROLE_CLIENT, credits=0, username=None, profile_name=None):
        counter["n"] += 1
        username = username or f"{role}{counter['n']}"
        user = create_user(
            username=username,
            email=f"{username}@example.com",
            password=PASSWORD,
            role=role,
            profile_name=profile_name,
        )
        if credits:
            credit_service.apply_transaction(user.id, credits, credit_service.KIND_PURCHASE, "Test funding")
        return user

    return _make


@pytest.fixture(scope='function')
def client_user(make_user):
    """Client with 100 credits."""
    return make_user(ROLE_CLIENT, credits=100, username="client_a")


@pytest.fixture(scope='function')
def lady(make_user):
    """Lady account with the public profile 'Alice'."""
    return make_user(ROLE_LADY, username="alice", profile_name="Alice")


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user(ROLE_ADMIN, username="admin")


@pytest.fixture(scope='function')
def lady_profile(lady):
    return lady.profiles[0]


@pytest.fixture(scope='function')
def make_booking(db_session):
    def _make(client, profile, status=BOOKING_STATUS_COMPLETED):
        booking = Booking(client_id=client.id, profile_id=profile.id, status=status)
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make


@pytest.fixture(scope='function')
def make_fan_post(db_session):
    def _make(author, credits_cost=15, title="Behind the scenes"):
        post = FanPost(author_id=author.id, title=title, body="...", credits_cost=credits_cost)
        db_session.add(post)
        db_session.commit()
        return post

    return _make


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """Factory: log a user in and return bearer headers."""
    def _login(user):
        token = get_auth_token(client, user.username)
        assert token, f"login failed for {user.username}"
        return auth_headers(token)

    return _login
