import pytest
from werkzeug.security import generate_password_hash

from app.foro import create_app
from app.foro.auth import reset_login_attempts
from app.foro.db import session_scope
from app.foro.models import ROLE_ADMIN, ROLE_USER, Base, User
from app.foro.rbac import ensure_roles

ADMIN_EMAIL = "admin@example.com"
ALICE_EMAIL = "alice@example.com"
BOB_EMAIL = "bob@example.com"
PASSWORD = "secret123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("PAGE_SIZE_DEFAULT", raising=False)
    monkeypatch.delenv("PAGE_SIZE_MAX", raising=False)
    reset_login_attempts()

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = ensure_roles(s)
        for email, name, role in (
            (ADMIN_EMAIL, "Admin", ROLE_ADMIN),
            (ALICE_EMAIL, "Alice", ROLE_USER),
            (BOB_EMAIL, "Bob", ROLE_USER),
        ):
            u = User(email=email, name=name, password_hash=generate_password_hash(PASSWORD), is_active=True)
            u.roles.append(roles[role])
            s.add(u)

    yield app
    reset_login_attempts()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def user_ids(app):
    with session_scope(app) as s:
        return {u.email: u.id for u in s.query(User).all()}


def csrf_headers(client) -> dict:
    """Fetch the session CSRF token the way an API client would."""
    token = client.get("/auth/csrf").get_json()["csrf_token"]
    return {"X-CSRF-Token": token}


def login(client, email: str, password: str = PASSWORD) -> dict:
    """JSON login; returns headers carrying the CSRF token for later writes."""
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return {"X-CSRF-Token": r.get_json()["csrf_token"]}


def form_token(client) -> str:
    with client.session_transaction() as sess:
        return sess["csrf_token"]


def create_post(client, headers: dict, **overrides) -> dict:
    payload = {"title": "Hello world", "content": "<p>Body</p>", "status": "published"}
    payload.update(overrides)
    r = client.post("/api/posts", json=payload, headers=headers)
    assert r.status_code == 201, r.get_json()
    return r.get_json()
