import pytest
from fastapi.testclient import TestClient

from carecamp.api.server import create_app
from carecamp.auth.crud import create_user, set_role
from carecamp.auth.security import create_access_token
from carecamp.config import Config
from carecamp.models import CAMPS, REGISTRATIONS, USERS
from tests.conftest import ADMIN_EMAIL, SECRET, USER_EMAIL, registration_payload


PROTECTED = [
    ("get", "/users", None),
    ("get", f"/users/{USER_EMAIL}", None),
    ("patch", f"/users/{USER_EMAIL}", {"name": "x"}),
    ("get", f"/users/admin/{USER_EMAIL}", None),
    ("delete", "/users/65f000000000000000000000", None),
    ("post", "/camps", {"camp_name": "x"}),
    ("patch", "/update-camp/65f000000000000000000000", {"fees": 1}),
    ("delete", "/delete-camp/65f000000000000000000000", None),
    ("post", "/registered-camps", {"camp_id": "x"}),
    ("get", "/registered-camps", None),
    ("patch", "/registered-camps/65f000000000000000000000", None),
    ("get", f"/user-registered-camps/{USER_EMAIL}", None),
    ("get", "/user-registered-camp/65f000000000000000000000", None),
    ("delete", "/delete-registration/65f000000000000000000000", None),
    ("delete", "/cancel-registration/65f000000000000000000000", None),
    ("post", "/create-payment-intent", {"fees": 10}),
    ("post", "/payment/65f000000000000000000000", {"transaction_id": "pi_1"}),
    ("get", f"/payment-history/{USER_EMAIL}", None),
    ("post", "/feedbacks", {"camp_id": "x"}),
    ("get", "/admin/stats", None),
]


@pytest.mark.parametrize("method,path,body", PROTECTED)
def test_missing_credential_is_401(client, store, method, path, body):
    kwargs = {"json": body} if body is not None else {}
    r = getattr(client, method)(path, **kwargs)
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "unauthorized_access"}


@pytest.mark.parametrize("method,path,body", PROTECTED)
def test_garbage_credential_is_401(client, method, path, body):
    client.cookies.set("token", "definitely.not.valid")
    kwargs = {"json": body} if body is not None else {}
    r = getattr(client, method)(path, **kwargs)
    assert r.status_code == 401


def test_unauthenticated_writes_do_not_touch_store(client, store, camp_payload):
    assert client.post("/camps", json=camp_payload).status_code == 401
    assert store.count(CAMPS) == 0


def test_bearer_header_is_accepted(app, store):
    token = create_access_token(secret=SECRET, identity={"email": USER_EMAIL})
    c = TestClient(app)
    r = c.get(f"/user-registered-camps/{USER_EMAIL}", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json() == []


# -----------------------------
# Self-ownership
# -----------------------------


@pytest.mark.parametrize(
    "path",
    [
        "/users/bob@carecamp.test",
        "/users/admin/bob@carecamp.test",
        "/user-registered-camps/bob@carecamp.test",
        "/payment-history/bob@carecamp.test",
    ],
)
def test_other_users_email_in_path_is_403(alice, path):
    r = alice.get(path)
    assert r.status_code == 403
    assert r.json()["message"] == "forbidden_access"


def test_self_check_ignores_case(alice):
    r = alice.get(f"/users/admin/{USER_EMAIL.upper()}")
    assert r.status_code == 200
    assert r.json() == {"admin": False}


def test_profile_patch_for_someone_else_is_403(alice, store, login):
    create_user(store, email="bob@carecamp.test", name="Bob")
    r = alice.patch("/users/bob@carecamp.test", json={"name": "Hacked"})
    assert r.status_code == 403
    assert store.find_one(USERS, {"email": "bob@carecamp.test"})["name"] == "Bob"


def test_register_for_someone_else_is_403(alice, store, camp_id):
    r = alice.post("/registered-camps", json=registration_payload(camp_id, email="bob@carecamp.test"))
    assert r.status_code == 403
    assert store.count(REGISTRATIONS) == 0
    assert store.find_one(CAMPS, {})["participants"] == 0


def test_feedback_for_someone_else_is_403(alice, store, camp_id):
    r = alice.post(
        "/feedbacks",
        json={"camp_id": camp_id, "participant_email": "bob@carecamp.test", "rating": 1, "feedback": "meh"},
    )
    assert r.status_code == 403
    assert store.find_many("feedbacks") == []


# -----------------------------
# Admin role
# -----------------------------


@pytest.fixture
def seeded(alice, store, camp_id):
    """A camp, a pending registration by alice and a second user, all by id."""
    registration_id = alice.post("/registered-camps", json=registration_payload(camp_id)).json()["inserted_id"]
    user_id = create_user(store, email="bob@carecamp.test", name="Bob")
    return {"camp_id": camp_id, "registration_id": registration_id, "user_id": user_id}


ADMIN_ONLY = [
    ("get", "/users", None),
    ("post", "/camps", "camp"),
    ("get", "/registered-camps", None),
    ("get", "/admin/stats", None),
    ("patch", "/update-camp/{camp_id}", {"fees": 1, "camp_name": "Renamed"}),
    ("delete", "/delete-camp/{camp_id}", None),
    ("delete", "/users/{user_id}", None),
    ("patch", "/registered-camps/{registration_id}", None),
    ("delete", "/delete-registration/{registration_id}", None),
]


@pytest.mark.parametrize("method,path,body", ADMIN_ONLY)
def test_non_admin_is_403(alice, store, seeded, camp_payload, method, path, body):
    camp_before = store.find_one(CAMPS, {})
    kwargs = {"json": camp_payload if body == "camp" else body} if body is not None else {}

    r = getattr(alice, method)(path.format(**seeded), **kwargs)
    assert r.status_code == 403
    assert r.json()["message"] == "admin_required"

    assert store.count(CAMPS) == 1
    assert store.find_one(CAMPS, {}) == camp_before
    registrations = store.find_many(REGISTRATIONS)
    assert [reg["_id"] for reg in registrations] == [seeded["registration_id"]]
    assert registrations[0]["confirmation_status"] == "Pending"
    assert store.find_one(USERS, {"email": "bob@carecamp.test"}) is not None


def test_unknown_user_is_not_admin(login, camp_payload, store):
    ghost = login("ghost@carecamp.test")
    assert ghost.post("/camps", json=camp_payload).status_code == 403
    assert store.count(CAMPS) == 0


def test_demoted_admin_loses_access_immediately(admin, store):
    assert admin.get("/users").status_code == 200
    set_role(store, ADMIN_EMAIL, "user")
    assert admin.get("/users").status_code == 403


# -----------------------------
# Registration ownership
# -----------------------------


def test_other_participant_cannot_touch_registration(alice, login, store, camp_id):
    rid = alice.post("/registered-camps", json=registration_payload(camp_id)).json()["inserted_id"]

    mallory = login("mallory@carecamp.test")
    assert mallory.get(f"/user-registered-camp/{rid}").status_code == 403
    assert mallory.post(f"/payment/{rid}", json={"transaction_id": "pi_x"}).status_code == 403
    assert mallory.delete(f"/cancel-registration/{rid}").status_code == 403

    assert store.count(REGISTRATIONS) == 1
    assert store.count("payments") == 0


def test_missing_registration_is_404(alice):
    r = alice.get("/user-registered-camp/65f000000000000000000000")
    assert r.status_code == 404
    assert r.json()["message"] == "registration_not_found"


# -----------------------------
# Session cookie lifecycle
# -----------------------------


def test_jwt_sets_http_only_cookie(client):
    r = client.post("/jwt", json={"email": USER_EMAIL})
    assert r.status_code == 200
    assert r.json() == {"success": True}

    cookie = r.headers["set-cookie"]
    assert cookie.startswith("token=")
    assert "HttpOnly" in cookie
    assert "SameSite=strict" in cookie
    assert "Max-Age=2592000" in cookie
    assert "; secure" not in cookie.lower()

    # The cookie now authenticates the same client.
    assert client.get(f"/user-registered-camps/{USER_EMAIL}").status_code == 200


def test_production_cookie_is_secure_and_cross_site(store):
    cfg = Config(
        ENVIRONMENT="production",
        AUTH_JWT_SECRET=SECRET,
        AUTH_COOKIE_SAMESITE="none",
        AUTH_COOKIE_SECURE=True,
    )
    c = TestClient(create_app(cfg, store))
    cookie = c.post("/jwt", json={"email": USER_EMAIL}).headers["set-cookie"]
    assert "; secure" in cookie.lower()
    assert "SameSite=none" in cookie


def test_logout_clears_cookie(client):
    r = client.get("/logout")
    assert r.status_code == 200
    assert r.json() == {"success": True}
    cookie = r.headers["set-cookie"].lower()
    assert cookie.startswith("token=")
    assert "max-age=0" in cookie
