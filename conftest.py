import os

# Settings are read at import time, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DEV_MODE"] = "true"

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from auth import create_access_token, hash_password
from database import Base, SessionLocal, engine
from main import app
from models import User
from utils import utcnow


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    """Factory inserting a user straight into the database."""
    counter = {"n": 0}

    def _make(full_name="Test User", email=None, password="secret-pass", phone=None):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            full_name=full_name,
            phone=phone,
            hashed_password=hash_password(password),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def owner(make_user):
    return make_user("Owner", "owner@example.com")


@pytest.fixture
def stranger(make_user):
    return make_user("Stranger", "stranger@example.com")


def iso_in(**delta):
    return (utcnow() + timedelta(**delta)).strftime("%Y-%m-%dT%H:%M:%S.000Z")


@pytest.fixture
def create_capsule(client):
    def _create(user, **fields):
        body = {"title": "Letters to 2035", "unlockDate": iso_in(days=365)}
        body.update(fields)
        response = client.post("/api/capsules", json=body, headers=auth_headers(user))
        assert response.status_code == 201, response.text
        return response.json()

    return _create
