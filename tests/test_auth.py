from conftest import ALICE_EMAIL, PASSWORD, csrf_headers, form_token, login

from app.foro.db import session_scope
from app.foro.models import AuditEvent, User


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_csrf_endpoint_returns_session_token(client):
    token = client.get("/auth/csrf").get_json()["csrf_token"]
    assert token
    assert form_token(client) == token


def test_json_login_success_and_audit(client, app):
    r = client.post("/auth/login", json={"email": ALICE_EMAIL, "password": PASSWORD})
    assert r.status_code == 200
    body = r.get_json()
    assert body["user"]["email"] == ALICE_EMAIL
    assert body["user"]["role"] == "user"
    assert body["csrf_token"]

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.login").count() == 1


def test_json_login_wrong_password(client, app):
    r = client.post("/auth/login", json={"email": ALICE_EMAIL, "password": "nope"})
    assert r.status_code == 401
    assert r.get_json() == {"error": "Invalid credentials"}
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").count() == 1


def test_inactive_user_cannot_login(client, app):
    with session_scope(app) as s:
        s.query(User).filter(User.email == ALICE_EMAIL).one().is_active = False
    r = client.post("/auth/login", json={"email": ALICE_EMAIL, "password": PASSWORD})
    assert r.status_code == 401


def test_form_login_redirects_to_safe_next(client):
    r = client.post("/auth/login", data={"email": ALICE_EMAIL, "password": PASSWORD, "next": "/dashboard/posts"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard/posts")


def test_form_login_ignores_external_next(client):
    r = client.post("/auth/login", data={"email": ALICE_EMAIL, "password": PASSWORD, "next": "//evil.example"})
    assert r.status_code == 302
    assert "evil" not in r.headers["Location"]


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": ALICE_EMAIL, "password": "bad"})
    r = client.post("/auth/login", json={"email": ALICE_EMAIL, "password": PASSWORD})
    assert r.status_code == 429


def test_logout_clears_session(client):
    headers = login(client, ALICE_EMAIL)
    assert client.get("/api/users/1", headers=headers).status_code in (200, 403)
    r = client.post("/auth/logout", json={})
    assert r.status_code == 200
    assert client.get("/api/users/1").status_code == 401


def test_register_page_creates_user_and_logs_in(client, app):
    r = client.post(
        "/auth/register",
        data={"name": "Carol", "email": "Carol@Example.com", "password": "pw12345", "password_confirm": "pw12345"},
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        carol = s.query(User).filter(User.email == "carol@example.com").one()
        assert carol.role == "user"
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.register").count() == 1
    assert client.get("/dashboard/posts").status_code == 200


def test_register_page_rejects_mismatched_passwords(client):
    r = client.post(
        "/auth/register",
        data={"email": "dan@example.com", "password": "pw12345", "password_confirm": "other"},
    )
    assert r.status_code == 400
    assert b"Passwords do not match." in r.data


def test_api_write_without_csrf_token_rejected(client):
    login(client, ALICE_EMAIL)
    r = client.post("/api/posts", json={"title": "t", "content": "c"})
    assert r.status_code == 400
    assert r.get_json() == {"error": "CSRF token missing or invalid."}


def test_api_write_with_wrong_csrf_token_rejected(client):
    login(client, ALICE_EMAIL)
    r = client.post("/api/posts", json={"title": "t", "content": "c"}, headers={"X-CSRF-Token": "wrong"})
    assert r.status_code == 400


def test_csrf_token_accepted_in_json_body(client):
    headers = login(client, ALICE_EMAIL)
    r = client.post("/api/posts", json={"title": "t", "content": "c", "csrf_token": headers["X-CSRF-Token"]})
    assert r.status_code == 201


def test_page_form_without_csrf_token_rejected(client):
    login(client, ALICE_EMAIL)
    r = client.post("/dashboard/posts/new", data={"title": "t", "content": "c"})
    assert r.status_code == 400
    assert b"CSRF token missing or invalid." in r.data


def test_anonymous_page_redirects_to_login(client):
    r = client.get("/dashboard/posts")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert "next=" in r.headers["Location"]


def test_anonymous_api_write_is_401(client):
    r = client.post("/api/posts", json={"title": "t", "content": "c"}, headers=csrf_headers(client))
    assert r.status_code == 401
    assert r.get_json() == {"error": "Not authenticated"}
