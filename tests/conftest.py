"""
Shared fixtures: an in-memory SQLite database shared by the test session and
the app (StaticPool keeps a single connection alive), plus a switchable fake
login that stands in for Google token verification.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.dependencies import get_verified_email, get_optional_email
from app.main import app
from app.models.user import User
from app.models.gift_code import GiftCode
from app.models.voucher import Voucher

READER_EMAIL = "reader@storyverse.test"
ADMIN_EMAIL = "admin@storyverse.test"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeLogin:
    """Which email the fake token resolves to; None means no/invalid token."""

    def __init__(self):
        self.email = READER_EMAIL

    def as_user(self, email):
        self.email = email

    def logout(self):
        self.email = None

    def required(self):
        if self.email is None:
            raise HTTPException(status_code=401, detail="Authentication failed")
        return self.email

    def optional(self):
        return self.email


@pytest.fixture
def session_factory():
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def login():
    return FakeLogin()


@pytest.fixture
def client(session_factory, login, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_verified_email] = login.required
    app.dependency_overrides[get_optional_email] = login.optional

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(email=READER_EMAIL, **fields):
        values = {
            "full_name": "Test Reader",
            "level": 1,
            "exp": 0.0,
            "coin_balance": 0,
            "consecutive_login_days": 0,
            "last_daily_login": None,
        }
        values.update(fields)
        user = User(email=email, **values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_gift_code(db):
    def _make_gift_code(code="WELCOME", **fields):
        values = {
            "coin_reward": 100,
            "exp_reward": 0,
            "usage_limit": 0,
            "used_count": 0,
            "is_active": True,
        }
        values.update(fields)
        gift_code = GiftCode(code=code, **values)
        db.add(gift_code)
        db.commit()
        db.refresh(gift_code)
        return gift_code
    return _make_gift_code


@pytest.fixture
def make_voucher(db):
    def _make_voucher(code="SALE10", **fields):
        values = {
            "discount_type": "PERCENT",
            "discount_value": 10,
            "min_order_value": 0,
            "used_count": 0,
            "is_active": True,
        }
        values.update(fields)
        voucher = Voucher(code=code, **values)
        db.add(voucher)
        db.commit()
        db.refresh(voucher)
        return voucher
    return _make_voucher
