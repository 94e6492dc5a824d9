from datetime import datetime, timedelta

from app.umbra.auth import validate_password, validate_registration
from app.umbra.db import session_scope
from app.umbra.models import User
from app.umbra.security import issue_token
from tests.conftest import ADMIN, PENDING, PROCESSOR


def test_validate_password_rules():
    assert validate_password("abc123") == []
    assert validate_password("ab1")  # too short
    assert validate_password("abcdefg")  # no digit
    assert validate_password("1234567")  # no letter


def test_validate_registration_requires_fields():
    assert validate_registration({"email": "a@b.co"}) == ["Name, email and password are required."]
    errors = validate_registration({"name": "X", "email": "nope", "password": "abc123"})
    assert "Name must be at least 2 characters." in errors
    assert "Invalid email address." in errors


def test_login_sets_cookie_and_me(client):
    r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": ADMIN[1]})
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["user"]["role"] == "ADMIN"
    assert "auth-token=" in r.headers.get("Set-Cookie", "")

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["email"] == ADMIN[0]


def test_login_is_case_insensitive_on_email(client):
    r = client.post("/api/auth/login", json={"email": "ADMIN@Example.com", "password": ADMIN[1]})
    assert r.status_code == 200


def test_login_errors(client):
    r = client.post("/api/auth/login", json={"email": ADMIN[0]})
    assert r.status_code == 400

    r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": "wrong-1"})
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={"email": PENDING[0], "password": PENDING[1]})
    assert r.status_code == 403
    assert "pending" in r.json["error"].lower()


def test_login_rate_limited_after_five_attempts(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": "wrong-1"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": ADMIN[1]})
    assert r.status_code == 429


def test_successful_login_resets_limiter(client):
    for _ in range(4):
        client.post("/api/auth/login", json={"email": ADMIN[0], "password": "wrong-1"})
    r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": ADMIN[1]})
    assert r.status_code == 200
    for _ in range(4):
        r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": "wrong-1"})
        assert r.status_code == 401


def test_me_without_token_is_401(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401


def test_bearer_token_is_accepted(client):
    r = client.post("/api/auth/login", json={"email": PROCESSOR[0], "password": PROCESSOR[1]})
    cookie = r.headers["Set-Cookie"].split(";", 1)[0]
    token = cookie.split("=", 1)[1]

    other = client.application.test_client()
    r = other.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == PROCESSOR[0]

    r = other.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_logout_clears_session(client, login):
    login()
    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    r = client.get("/api/auth/me")
    assert r.status_code == 401


def test_register_creates_pending_user(client):
    r = client.post(
        "/api/auth/register",
        json={"name": "New Person", "email": "new@example.com", "password": "secret1"},
    )
    assert r.status_code == 201
    assert r.json["user"]["status"] == "PENDING"
    assert r.json["user"]["role"] == "USER"

    r = client.post(
        "/api/auth/register",
        json={"name": "New Person", "email": "new@example.com", "password": "secret1"},
    )
    assert r.status_code == 409

    r = client.post("/api/auth/login", json={"email": "new@example.com", "password": "secret1"})
    assert r.status_code == 403


def test_register_validation(client):
    r = client.post("/api/auth/register", json={"name": "Someone", "email": "x@example.com", "password": "short"})
    assert r.status_code == 400
    assert r.json["errors"]


def test_register_rate_limit_counts_only_successes(client):
    for i in range(3):
        r = client.post(
            "/api/auth/register",
            json={"name": "Person", "email": f"p{i}@example.com", "password": "secret1"},
        )
        assert r.status_code == 201
    r = client.post(
        "/api/auth/register",
        json={"name": "Person", "email": "p9@example.com", "password": "secret1"},
    )
    assert r.status_code == 429


def test_change_password(client, login):
    login(PROCESSOR)
    r = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "wrong", "newPassword": "fresh123", "confirmPassword": "fresh123"},
    )
    assert r.status_code == 400

    r = client.post(
        "/api/auth/change-password",
        json={"currentPassword": PROCESSOR[1], "newPassword": "fresh123", "confirmPassword": "other123"},
    )
    assert r.status_code == 400

    r = client.post(
        "/api/auth/change-password",
        json={"currentPassword": PROCESSOR[1], "newPassword": "fresh123", "confirmPassword": "fresh123"},
    )
    assert r.status_code == 200

    client.post("/api/auth/logout")
    r = client.post("/api/auth/login", json={"email": PROCESSOR[0], "password": "fresh123"})
    assert r.status_code == 200


def _token_for(app, email, **kw):
    with app.app_context(), session_scope(app) as s:
        user = s.query(User).filter(User.email == email).one()
        return issue_token(user, **kw)


def test_expired_token_is_401_and_clears_cookie(app, client):
    token = _token_for(app, PROCESSOR[0], now=datetime.utcnow() - timedelta(days=30))
    client.set_cookie("auth-token", token)

    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json["error"] == "Token expired"
    assert "auth-token=;" in r.headers.get("Set-Cookie", "")

    r = client.get("/api/processor/stats")
    assert r.status_code == 401


def test_token_of_deleted_user_is_401(app, client):
    token = _token_for(app, PENDING[0])
    with session_scope(app) as s:
        s.delete(s.query(User).filter(User.email == PENDING[0]).one())

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json["error"] == "User not found"
    assert "auth-token=;" in r.headers.get("Set-Cookie", "")


def test_non_string_credentials_are_rejected(client):
    r = client.post("/api/auth/login", json={"email": ["admin@example.com"], "password": ADMIN[1]})
    assert r.status_code == 400
    r = client.post("/api/auth/login", json={"email": ADMIN[0], "password": 12345})
    assert r.status_code == 400
    r = client.post("/api/auth/register", json={"name": "Someone", "email": 42, "password": "abc123"})
    assert r.status_code == 400
