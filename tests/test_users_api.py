from conftest import ADMIN_EMAIL, ALICE_EMAIL, BOB_EMAIL, csrf_headers, login

from app.foro.db import session_scope
from app.foro.models import AuditEvent, User


def test_public_registration_via_api(client, app):
    headers = csrf_headers(client)
    r = client.post(
        "/api/users?register=true",
        json={"email": "New@Example.com", "password": "pw12345", "name": "Newbie"},
        headers=headers,
    )
    assert r.status_code == 201
    body = r.get_json()
    assert body["email"] == "new@example.com"
    assert body["role"] == "user"
    assert "password_hash" not in body


def test_registration_ignores_role(client):
    r = client.post(
        "/api/users?register=true",
        json={"email": "sneaky@example.com", "password": "pw12345", "role": "admin"},
        headers=csrf_headers(client),
    )
    assert r.status_code == 201
    assert r.get_json()["role"] == "user"

    r = client.post(
        "/api/users?register=true",
        json={"email": "plain@example.com", "password": "pw12345", "role": "user"},
        headers=csrf_headers(client),
    )
    assert r.status_code == 201
    assert r.get_json()["role"] == "user"


def test_registration_duplicate_email(client):
    r = client.post(
        "/api/users?register=true",
        json={"email": ALICE_EMAIL.upper(), "password": "pw12345"},
        headers=csrf_headers(client),
    )
    assert r.status_code == 400
    assert "Email already registered" in r.get_json()["details"]


def test_registration_validation_errors(client):
    r = client.post("/api/users?register=true", json={"email": "bad", "password": "x"}, headers=csrf_headers(client))
    assert r.status_code == 400
    details = r.get_json()["details"]
    assert "A valid email is required." in details
    assert any("Password must be at least" in d for d in details)


def test_non_object_body_rejected(client):
    r = client.post("/api/users?register=true", json=["nope"], headers=csrf_headers(client))
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid data"


def test_list_users_requires_permission(client):
    assert client.get("/api/users").status_code == 401
    login(client, ALICE_EMAIL)
    r = client.get("/api/users")
    assert r.status_code == 403
    assert r.get_json() == {"error": "Forbidden"}


def test_admin_lists_users_with_pagination(client):
    login(client, ADMIN_EMAIL)
    r = client.get("/api/users?limit=2&page=1")
    assert r.status_code == 200
    body = r.get_json()
    assert len(body["users"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert all("email" in u for u in body["users"])


def test_admin_search_users(client):
    login(client, ADMIN_EMAIL)
    body = client.get("/api/users?search=bob").get_json()
    assert [u["email"] for u in body["users"]] == [BOB_EMAIL]


def test_limit_is_clamped(client):
    login(client, ADMIN_EMAIL)
    body = client.get("/api/users?limit=5000&page=0").get_json()
    assert body["pagination"]["limit"] == 100
    assert body["pagination"]["page"] == 1


def test_get_self_and_others(client, user_ids):
    login(client, ALICE_EMAIL)
    r = client.get(f"/api/users/{user_ids[ALICE_EMAIL]}")
    assert r.status_code == 200
    assert r.get_json()["email"] == ALICE_EMAIL
    assert r.get_json()["counts"] == {"posts": 0, "comments": 0}
    assert client.get(f"/api/users/{user_ids[BOB_EMAIL]}").status_code == 403


def test_get_missing_user_is_404_for_admin(client):
    login(client, ADMIN_EMAIL)
    r = client.get("/api/users/9999")
    assert r.status_code == 404
    assert r.get_json() == {"error": "User not found"}


def test_user_updates_own_name_but_not_role(client, app, user_ids):
    headers = login(client, ALICE_EMAIL)
    r = client.patch(
        f"/api/users/{user_ids[ALICE_EMAIL]}",
        json={"name": "Alicia", "role": "admin", "email": "other@example.com"},
        headers=headers,
    )
    assert r.status_code == 200
    body = r.get_json()
    assert body["name"] == "Alicia"
    assert body["role"] == "user"
    assert body["email"] == ALICE_EMAIL


def test_user_cannot_update_someone_else(client, user_ids):
    headers = login(client, ALICE_EMAIL)
    r = client.patch(f"/api/users/{user_ids[BOB_EMAIL]}", json={"name": "x"}, headers=headers)
    assert r.status_code == 403


def test_admin_updates_role_and_email(client, app, user_ids):
    headers = login(client, ADMIN_EMAIL)
    r = client.patch(
        f"/api/users/{user_ids[BOB_EMAIL]}",
        json={"role": "admin", "email": "robert@example.com", "is_active": False},
        headers=headers,
    )
    assert r.status_code == 200
    body = r.get_json()
    assert body["role"] == "admin"
    assert body["email"] == "robert@example.com"
    assert body["is_active"] is False
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.update").one()
        assert ev.entity_id == str(user_ids[BOB_EMAIL])


def test_admin_email_collision(client, user_ids):
    headers = login(client, ADMIN_EMAIL)
    r = client.patch(f"/api/users/{user_ids[BOB_EMAIL]}", json={"email": ALICE_EMAIL}, headers=headers)
    assert r.status_code == 400
    assert "Email already in use" in r.get_json()["details"]


def test_admin_creates_user_with_role(client):
    headers = login(client, ADMIN_EMAIL)
    r = client.post("/api/users", json={"email": "mod@example.com", "password": "pw12345", "role": "admin"}, headers=headers)
    assert r.status_code == 201
    assert r.get_json()["role"] == "admin"


def test_non_admin_cannot_create_user(client):
    headers = login(client, ALICE_EMAIL)
    r = client.post("/api/users", json={"email": "x@example.com", "password": "pw12345"}, headers=headers)
    assert r.status_code == 403


def test_admin_cannot_delete_self(client, user_ids):
    headers = login(client, ADMIN_EMAIL)
    r = client.delete(f"/api/users/{user_ids[ADMIN_EMAIL]}", headers=headers)
    assert r.status_code == 400
    assert r.get_json() == {"error": "You cannot delete your own account"}


def test_delete_user_removes_their_content(client, app, user_ids):
    alice = login(client, ALICE_EMAIL)
    post = client.post("/api/posts", json={"title": "Mine", "content": "c", "status": "published"}, headers=alice).get_json()
    client.post("/auth/logout", json={})

    bob = login(client, BOB_EMAIL)
    assert client.post("/api/comments", json={"post_id": post["id"], "content": "hi"}, headers=bob).status_code == 201
    assert client.post("/api/likes", json={"post_id": post["id"]}, headers=bob).status_code == 200
    client.post("/auth/logout", json={})

    admin = login(client, ADMIN_EMAIL)
    r = client.delete(f"/api/users/{user_ids[ALICE_EMAIL]}", headers=admin)
    assert r.status_code == 200

    from app.foro.modules.comments.models import Comment
    from app.foro.modules.likes.models import Like
    from app.foro.modules.posts.models import Post

    with session_scope(app) as s:
        assert s.query(User).filter(User.email == ALICE_EMAIL).count() == 0
        assert s.query(Post).count() == 0
        assert s.query(Comment).count() == 0
        assert s.query(Like).count() == 0
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.delete").count() == 1


def test_empty_name_rejected(client, user_ids):
    headers = login(client, ALICE_EMAIL)
    for name in ("", "   "):
        r = client.patch(f"/api/users/{user_ids[ALICE_EMAIL]}", json={"name": name}, headers=headers)
        assert r.status_code == 400
        assert "Name cannot be empty." in r.get_json()["details"]

    r = client.post(
        "/api/users?register=true",
        json={"email": "blank@example.com", "password": "pw12345", "name": ""},
        headers=csrf_headers(client),
    )
    assert r.status_code == 400


def test_serialize_user_masks_private_fields(app):
    from app.foro.modules.users.service import serialize_user

    with session_scope(app) as s:
        alice = s.query(User).filter(User.email == ALICE_EMAIL).one()
        bob = s.query(User).filter(User.email == BOB_EMAIL).one()
        admin = s.query(User).filter(User.email == ADMIN_EMAIL).one()

        assert set(serialize_user(alice, bob)) == {"id", "name", "created_at"}
        assert set(serialize_user(alice, None)) == {"id", "name", "created_at"}
        assert serialize_user(alice, alice)["email"] == ALICE_EMAIL
        assert serialize_user(alice, admin)["role"] == "user"
