# tests/conftest.py
"""
Pytest configuration and shared fixtures for the commission platform.

Run:
    pytest -v
    pytest tests/test_cascade.py -v
"""
import os

# Must be set before config.py / logger.py are imported
os.environ["FLASK_ENV"] = "testing"
os.environ["LOG_TO_FILE"] = "False"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import itertools
from decimal import Decimal

import pytest
from sqlalchemy import text

from app import create_app
from config import TestConfig
from extensions import db
from models import User, Product, UserRole
from commissions.referral_tree import ReferralTreeHelper


DEFAULT_PASSWORD = "password123"


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================

@pytest.fixture
def app():
    """Fresh application and empty in-memory database per test."""
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(app):
    """
    Create and commit a user.

        alice = make_user("alice", role=UserRole.AFFILIATOR)
        bob = make_user("bob", referrer=alice)
    """
    counter = itertools.count(1)

    def _make_user(username=None, role=UserRole.USER, referrer=None, password=DEFAULT_PASSWORD):
        username = username or f"user{next(counter)}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            full_name=username.title(),
            role=role.value if isinstance(role, UserRole) else role,
            referral_code=ReferralTreeHelper.generate_referral_code(),
            referred_by=referrer.id if referrer else None,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_product(app):
    def _make_product(name="Test Product", price="100.00", commission="10"):
        product = Product(
            name=name,
            description=f"{name} description",
            price=Decimal(price),
            image_url="https://images.example.com/product.png",
            commission=Decimal(commission),
            rating=0,
            review_count=0,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return _make_product


@pytest.fixture
def login(client):
    """Log `user` in on the shared test client and return the client."""
    def _login(user, password=DEFAULT_PASSWORD):
        response = client.post("/api/login", json={"username": user.username, "password": password})
        assert response.status_code == 200, response.get_json()
        return client

    return _login


# =============================================================================
# NOTIFICATION SINKS
# =============================================================================

class RecordingSink:
    def __init__(self):
        self.notifications = []

    def notify(self, notification):
        self.notifications.append(notification)

    def for_user(self, user_id):
        return [n for n in self.notifications if n.user_id == user_id]


class FailingSink:
    def __init__(self):
        self.attempts = 0

    def notify(self, notification):
        self.attempts += 1
        raise ConnectionError("notification channel unavailable")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


# =============================================================================
# LEDGER HELPERS
# =============================================================================

@pytest.fixture
def calc_ledger_sum(app):
    """SUM(amount) for one user, computed straight from the table."""
    def _calc(user_id):
        result = db.session.execute(
            text("SELECT COALESCE(SUM(amount), 0) FROM transactions WHERE user_id = :uid"),
            {"uid": user_id},
        ).scalar()
        return Decimal(str(result)).quantize(Decimal("0.01"))

    return _calc
