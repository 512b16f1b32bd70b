#!/usr/bin/env python3
"""Seed demo users, tags, posts, comments and likes (idempotent by email/slug).

Usage:
  python scripts/seed_demo.py
  python scripts/seed_demo.py --password demo1234
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.foro.models import User
from app.foro.modules.comments.service import create_comment
from app.foro.modules.likes.models import Like
from app.foro.modules.posts.models import STATUS_DRAFT, STATUS_PUBLISHED, Post
from app.foro.modules.posts.slugs import slugify
from app.foro.modules.posts.service import create_post
from app.foro.modules.users.service import create_user, normalize_email
from app.foro.rbac import ensure_roles
from scripts._db_utils import resolve_db_url, script_session

DEMO_USERS = [
    ("ana@foro.local", "Ana"),
    ("bruno@foro.local", "Bruno"),
    ("carla@foro.local", "Carla"),
]

DEMO_POSTS = [
    {
        "author": "ana@foro.local",
        "title": "Welcome to the forum",
        "content": "<p>Introduce yourself in the <strong>comments</strong>.</p>",
        "status": STATUS_PUBLISHED,
        "tags": ["announcements", "community"],
    },
    {
        "author": "bruno@foro.local",
        "title": "Favourite Python libraries",
        "content": "<p>Flask, SQLAlchemy and <a href=\"https://pytest.org\">pytest</a>. Yours?</p>",
        "status": STATUS_PUBLISHED,
        "tags": ["python", "community"],
    },
    {
        "author": "carla@foro.local",
        "title": "Draft: moderation guidelines",
        "content": "<p>Work in progress.</p>",
        "status": STATUS_DRAFT,
        "tags": ["meta"],
    },
]

DEMO_COMMENTS = [
    ("Welcome to the forum", "bruno@foro.local", "Hi everyone!"),
    ("Welcome to the forum", "carla@foro.local", "Glad to be here."),
    ("Favourite Python libraries", "ana@foro.local", "Requests, every single day."),
]


def seed_demo(*, password: str, database_url: str | None = None) -> None:
    db_url = resolve_db_url(database_url)
    with script_session(db_url) as s:
        ensure_roles(s)

        users: dict[str, User] = {}
        for email, name in DEMO_USERS:
            user = s.query(User).filter(User.email == normalize_email(email)).one_or_none()
            if not user:
                user = create_user(s, {"email": email, "name": name, "password": password})
                print(f"Created user {email}")
            users[email] = user

        posts: dict[str, Post] = {}
        for item in DEMO_POSTS:
            post = s.query(Post).filter(Post.slug == slugify(item["title"])).one_or_none()
            if not post:
                post = create_post(s, item, users[item["author"]])
                print(f"Created post {post.slug}")
                for title, email, content in DEMO_COMMENTS:
                    if title == item["title"]:
                        create_comment(s, post, content, users[email])
            posts[item["title"]] = post
        s.flush()

        for post in posts.values():
            if post.status != STATUS_PUBLISHED:
                continue
            for user in users.values():
                if user.id == post.author_id:
                    continue
                exists = s.query(Like).filter(Like.user_id == user.id, Like.post_id == post.id).one_or_none()
                if not exists:
                    s.add(Like(user_id=user.id, post_id=post.id))

    print("Demo data ready.")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--password", default="demo1234", help="Password for every demo account")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args()
    seed_demo(password=args.password, database_url=args.database_url)


if __name__ == "__main__":
    main()
