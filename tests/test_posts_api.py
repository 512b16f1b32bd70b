from conftest import ADMIN_EMAIL, ALICE_EMAIL, BOB_EMAIL, create_post, csrf_headers, login

from app.foro.db import session_scope
from app.foro.models import AuditEvent
from app.foro.modules.posts.models import Post, Tag


def test_create_post_sanitizes_and_slugs(client, app):
    headers = login(client, ALICE_EMAIL)
    body = create_post(
        client,
        headers,
        title="  Mi <primera> publicación ",
        content="<p>Hola</p><script>alert(1)</script>",
        tags=["python", "Python", " intro "],
    )
    assert body["title"] == "Mi primera publicación"
    assert body["slug"] == "mi-primera-publicacion"
    assert body["content"] == "<p>Hola</p>"
    assert body["tags"] == ["Python", "intro", "python"]
    assert body["author"]["email"] == ALICE_EMAIL
    assert body["counts"] == {"comments": 0, "likes": 0}
    assert body["liked_by_me"] is False

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "post.create").count() == 1


def test_default_status_is_draft(client):
    headers = login(client, ALICE_EMAIL)
    r = client.post("/api/posts", json={"title": "Draft", "content": "c"}, headers=headers)
    assert r.status_code == 201
    assert r.get_json()["status"] == "draft"


def test_duplicate_titles_get_distinct_slugs(client):
    headers = login(client, ALICE_EMAIL)
    first = create_post(client, headers, title="Same")
    second = create_post(client, headers, title="Same")
    assert first["slug"] == "same"
    assert second["slug"] == "same-1"


def test_create_post_validation(client):
    headers = login(client, ALICE_EMAIL)
    r = client.post("/api/posts", json={"title": "", "content": "", "status": "weird", "tags": "x"}, headers=headers)
    assert r.status_code == 400
    details = r.get_json()["details"]
    assert "Title is required." in details
    assert "Content is required." in details
    assert any(d.startswith("Invalid status") for d in details)
    assert "Tags must be a list of strings." in details


def test_title_too_long(client):
    headers = login(client, ALICE_EMAIL)
    r = client.post("/api/posts", json={"title": "x" * 201, "content": "c"}, headers=headers)
    assert r.status_code == 400


def test_public_feed_hides_drafts_and_hidden_posts(client):
    headers = login(client, ALICE_EMAIL)
    create_post(client, headers, title="Public one")
    create_post(client, headers, title="A draft", status="draft")
    client.post("/auth/logout", json={})

    body = client.get("/api/posts").get_json()
    assert [p["title"] for p in body["posts"]] == ["Public one"]
    assert body["pagination"]["total"] == 1


def test_feed_newest_first_and_paginated(client):
    headers = login(client, ALICE_EMAIL)
    for i in range(3):
        create_post(client, headers, title=f"Post {i}")
    body = client.get("/api/posts?limit=2").get_json()
    assert [p["title"] for p in body["posts"]] == ["Post 2", "Post 1"]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    body = client.get("/api/posts?limit=2&page=2").get_json()
    assert [p["title"] for p in body["posts"]] == ["Post 0"]


def test_feed_search_and_tag_filter(client):
    headers = login(client, ALICE_EMAIL)
    create_post(client, headers, title="Flask tips", tags=["python"])
    create_post(client, headers, title="Gardening", content="<p>tomatoes</p>", tags=["garden"])

    assert [p["title"] for p in client.get("/api/posts?search=tomato").get_json()["posts"]] == ["Gardening"]
    assert [p["title"] for p in client.get("/api/posts?tag=PYTHON").get_json()["posts"]] == ["Flask tips"]


def test_mine_lists_drafts(client):
    headers = login(client, ALICE_EMAIL)
    create_post(client, headers, title="Draft", status="draft")
    body = client.get("/api/posts?mine=true").get_json()
    assert [p["title"] for p in body["posts"]] == ["Draft"]
    body = client.get("/api/posts?mine=true&status=published").get_json()
    assert body["posts"] == []


def test_admin_flag_ignored_for_regular_users(client):
    alice = login(client, ALICE_EMAIL)
    create_post(client, alice, title="Draft", status="draft")
    client.post("/auth/logout", json={})

    login(client, BOB_EMAIL)
    assert client.get("/api/posts?admin=true").get_json()["posts"] == []
    client.post("/auth/logout", json={})

    login(client, ADMIN_EMAIL)
    body = client.get("/api/posts?admin=true&status=draft").get_json()
    assert [p["title"] for p in body["posts"]] == ["Draft"]


def test_draft_is_404_for_others(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice, status="draft")
    assert client.get(f"/api/posts/{post['id']}").status_code == 200
    client.post("/auth/logout", json={})

    r = client.get(f"/api/posts/{post['id']}")
    assert r.status_code == 404
    assert r.get_json() == {"error": "Post not found"}

    login(client, ADMIN_EMAIL)
    assert client.get(f"/api/posts/{post['id']}").status_code == 200


def test_post_detail_includes_visible_comments(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice)
    client.post("/api/comments", json={"post_id": post["id"], "content": "first"}, headers=alice)
    client.post("/api/comments", json={"post_id": post["id"], "content": "second"}, headers=alice)
    body = client.get(f"/api/posts/{post['id']}").get_json()
    assert [c["content"] for c in body["comments"]] == ["second", "first"]
    assert body["counts"]["comments"] == 2


def test_author_updates_post_and_tags(client, app):
    headers = login(client, ALICE_EMAIL)
    post = create_post(client, headers, tags=["a", "b"])
    r = client.patch(f"/api/posts/{post['id']}", json={"title": "Renamed", "tags": ["b", "c"]}, headers=headers)
    assert r.status_code == 200
    body = r.get_json()
    assert body["title"] == "Renamed"
    assert body["slug"] == post["slug"]
    assert body["tags"] == ["b", "c"]

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "post.update").one()
        assert '"tags"' in ev.metadata_json
        assert s.query(Tag).count() == 3


def test_author_cannot_hide_own_post(client):
    headers = login(client, ALICE_EMAIL)
    post = create_post(client, headers)
    r = client.patch(f"/api/posts/{post['id']}", json={"visible": False}, headers=headers)
    assert r.status_code == 200
    assert r.get_json()["visible"] is True


def test_moderator_hides_post(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice)
    client.post("/auth/logout", json={})

    admin = login(client, ADMIN_EMAIL)
    r = client.patch(f"/api/posts/{post['id']}", json={"visible": False}, headers=admin)
    assert r.status_code == 200
    assert r.get_json()["visible"] is False
    client.post("/auth/logout", json={})

    assert client.get("/api/posts").get_json()["posts"] == []
    assert client.get(f"/api/posts/{post['id']}").status_code == 404


def test_other_user_cannot_edit_or_delete(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice)
    client.post("/auth/logout", json={})

    bob = login(client, BOB_EMAIL)
    assert client.patch(f"/api/posts/{post['id']}", json={"title": "x"}, headers=bob).status_code == 403
    assert client.delete(f"/api/posts/{post['id']}", headers=bob).status_code == 403


def test_delete_post(client, app):
    headers = login(client, ALICE_EMAIL)
    post = create_post(client, headers)
    client.post("/api/likes", json={"post_id": post["id"]}, headers=headers)
    r = client.delete(f"/api/posts/{post['id']}", headers=headers)
    assert r.status_code == 200
    assert r.get_json() == {"message": "Post deleted"}
    assert client.get(f"/api/posts/{post['id']}").status_code == 404

    with session_scope(app) as s:
        assert s.query(Post).count() == 0
        assert s.query(AuditEvent).filter(AuditEvent.action == "post.delete").count() == 1


def test_missing_post_404(client):
    headers = login(client, ALICE_EMAIL)
    assert client.patch("/api/posts/999", json={"title": "x"}, headers=headers).status_code == 404
    assert client.delete("/api/posts/999", headers=headers).status_code == 404


def test_anonymous_cannot_create(client):
    r = client.post("/api/posts", json={"title": "t", "content": "c"}, headers=csrf_headers(client))
    assert r.status_code == 401


def test_author_email_hidden_from_other_viewers(client):
    alice = login(client, ALICE_EMAIL)
    post = create_post(client, alice)
    assert client.post("/api/comments", json={"post_id": post["id"], "content": "first"}, headers=alice).status_code == 201
    client.post("/auth/logout", json={})

    login(client, BOB_EMAIL)
    body = client.get(f"/api/posts/{post['id']}").get_json()
    assert set(body["author"]) == {"id", "name"}
    assert set(body["comments"][0]["author"]) == {"id", "name"}
    listed = client.get("/api/posts").get_json()["posts"]
    assert set(listed[0]["author"]) == {"id", "name"}
    client.post("/auth/logout", json={})

    body = client.get(f"/api/posts/{post['id']}").get_json()
    assert set(body["author"]) == {"id", "name"}

    login(client, ADMIN_EMAIL)
    body = client.get(f"/api/posts/{post['id']}").get_json()
    assert body["author"]["email"] == ALICE_EMAIL


def test_search_treats_wildcards_literally(client):
    alice = login(client, ALICE_EMAIL)
    create_post(client, alice, title="100% sure", content="c")
    create_post(client, alice, title="1000 reasons", content="c")
    create_post(client, alice, title="snake_case", content="c")
    create_post(client, alice, title="snakeXcase", content="c")

    titles = [p["title"] for p in client.get("/api/posts", query_string={"search": "100%"}).get_json()["posts"]]
    assert titles == ["100% sure"]
    titles = [p["title"] for p in client.get("/api/posts", query_string={"search": "e_c"}).get_json()["posts"]]
    assert titles == ["snake_case"]
