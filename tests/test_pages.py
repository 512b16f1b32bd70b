from conftest import ALICE_EMAIL, BOB_EMAIL, PASSWORD, create_post, form_token, login

from app.foro.db import session_scope
from app.foro.modules.comments.models import Comment
from app.foro.modules.likes.models import Like
from app.foro.modules.posts.models import Post


def test_index_renders_public_posts(client):
    alice = login(client, ALICE_EMAIL)
    create_post(client, alice, title="Visible post", tags=["news"])
    create_post(client, alice, title="Secret draft", status="draft")
    client.post("/auth/logout", json={})

    r = client.get("/")
    assert r.status_code == 200
    assert b"Visible post" in r.data
    assert b"Secret draft" not in r.data
    assert b"#news" in r.data

    r = client.get("/?tag=other")
    assert b"Visible post" not in r.data


def test_post_detail_page_and_404(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice, content="<p>Rendered <em>body</em></p>")
    client.post("/auth/logout", json={})

    r = client.get(f"/posts/{post['slug']}")
    assert r.status_code == 200
    assert b"<p>Rendered <em>body</em></p>" in r.data
    assert client.get("/posts/does-not-exist").status_code == 404


def test_login_page(client):
    assert client.get("/auth/login").status_code == 200
    assert client.get("/auth/register").status_code == 200


def test_dashboard_create_edit_publish(client, app):
    client.post("/auth/login", data={"email": ALICE_EMAIL, "password": PASSWORD})
    token = form_token(client)

    r = client.post(
        "/dashboard/posts/new",
        data={"csrf_token": token, "title": "From the form", "content": "<p>x</p>", "tags": "a, b, ", "status": "draft"},
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        post = s.query(Post).one()
        assert post.status == "draft"
        assert post.tag_names == ["a", "b"]
        post_id = post.id

    assert client.get("/dashboard/posts").status_code == 200
    assert client.get(f"/dashboard/posts/{post_id}/edit").status_code == 200

    r = client.post(
        f"/dashboard/posts/{post_id}/edit",
        data={"csrf_token": token, "title": "Edited", "content": "<p>y</p>", "tags": "b", "status": "draft"},
    )
    assert r.status_code == 302
    assert client.post(f"/dashboard/posts/{post_id}/status", data={"csrf_token": token}).status_code == 302
    with session_scope(app) as s:
        post = s.get(Post, post_id)
        assert post.title == "Edited"
        assert post.status == "published"
        assert post.tag_names == ["b"]


def test_dashboard_form_validation(client):
    client.post("/auth/login", data={"email": ALICE_EMAIL, "password": PASSWORD})
    token = form_token(client)
    r = client.post("/dashboard/posts/new", data={"csrf_token": token, "title": "", "content": ""})
    assert r.status_code == 400
    assert b"Title is required." in r.data


def test_other_user_cannot_edit_via_dashboard(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice)
    client.post("/auth/logout", json={})

    login(client, BOB_EMAIL)
    assert client.get(f"/dashboard/posts/{post['id']}/edit").status_code == 403


def test_comment_and_like_forms(client, app):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice)
    client.post("/auth/logout", json={})

    client.post("/auth/login", data={"email": BOB_EMAIL, "password": PASSWORD})
    token = form_token(client)
    r = client.post(f"/posts/{post['slug']}/comments", data={"csrf_token": token, "content": "Great!"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("#comments")
    r = client.post(f"/posts/{post['slug']}/like", data={"csrf_token": token})
    assert r.status_code == 302

    with session_scope(app) as s:
        assert s.query(Comment).count() == 1
        assert s.query(Like).count() == 1
        comment_id = s.query(Comment.id).scalar()

    page = client.get(f"/posts/{post['slug']}")
    assert b"Great!" in page.data
    assert b"Unlike (1)" in page.data

    assert client.post(f"/comments/{comment_id}/delete", data={"csrf_token": token}).status_code == 302
    with session_scope(app) as s:
        assert s.query(Comment).count() == 0


def test_profile_update(client, app):
    client.post("/auth/login", data={"email": ALICE_EMAIL, "password": PASSWORD})
    token = form_token(client)
    assert client.get("/profile").status_code == 200
    r = client.post(
        "/profile",
        data={"csrf_token": token, "name": "Alice Liddell", "password": "newpass1", "password_confirm": "newpass1"},
    )
    assert r.status_code == 302
    client.post("/auth/logout", json={})
    r = client.post("/auth/login", json={"email": ALICE_EMAIL, "password": "newpass1"})
    assert r.status_code == 200
    assert r.get_json()["user"]["name"] == "Alice Liddell"
