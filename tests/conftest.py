import mongomock
import pytest
from fastapi.testclient import TestClient

from carecamp.api.server import create_app
from carecamp.auth.crud import create_user
from carecamp.auth.security import create_access_token
from carecamp.config import Config
from carecamp.db import ResourceStore
from carecamp.models import ROLE_ADMIN

SECRET = "test-secret"
ADMIN_EMAIL = "admin@carecamp.test"
USER_EMAIL = "alice@carecamp.test"


@pytest.fixture
def cfg():
    return Config(
        ENVIRONMENT="development",
        AUTH_JWT_SECRET=SECRET,
        AUTH_COOKIE_NAME="token",
        AUTH_COOKIE_SAMESITE="strict",
        AUTH_COOKIE_SECURE=False,
        CORS_ALLOW_ORIGINS="http://localhost:5173",
        STRIPE_SECRET_KEY=None,
        PAYMENT_CURRENCY="usd",
        BOOTSTRAP_ADMIN_EMAIL=None,
    )


@pytest.fixture
def store():
    s = ResourceStore(mongomock.MongoClient()["CareCamp_Test"])
    s.ensure_indexes()
    return s


@pytest.fixture
def app(cfg, store):
    return create_app(cfg, store)


@pytest.fixture
def client(app):
    """Anonymous client."""
    return TestClient(app)


@pytest.fixture
def login(app):
    """Return a client whose session cookie identifies `email`."""

    def _login(email: str) -> TestClient:
        c = TestClient(app)
        c.cookies.set("token", create_access_token(secret=SECRET, identity={"email": email}))
        return c

    return _login


@pytest.fixture
def admin(store, login):
    create_user(store, email=ADMIN_EMAIL, name="Camp Admin", role=ROLE_ADMIN)
    return login(ADMIN_EMAIL)


@pytest.fixture
def alice(store, login):
    create_user(store, email=USER_EMAIL, name="Alice")
    return login(USER_EMAIL)


@pytest.fixture
def camp_payload():
    return {
        "camp_name": "Rural Eye Care Camp",
        "image": "https://img.example/eye.png",
        "location": "Sylhet",
        "date": "2026-11-02",
        "time": "09:00",
        "fees": 50,
        "healthcare_professional": "Dr. Rahman",
        "description": "Free screening, low-cost surgery referrals.",
    }


@pytest.fixture
def camp_id(admin, camp_payload):
    r = admin.post("/camps", json=camp_payload)
    assert r.status_code == 200
    return r.json()["inserted_id"]


def registration_payload(camp_id: str, email: str = USER_EMAIL) -> dict:
    return {
        "camp_id": camp_id,
        "participant_name": "Alice",
        "participant_email": email,
        "age": 34,
        "phone": "+8801700000000",
        "gender": "female",
        "emergency_contact": "+8801800000000",
    }
