from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_
from werkzeug.security import generate_password_hash

from app.foro.audit import record_event
from app.foro.db import LIKE_ESCAPE, contains_pattern
from app.foro.models import ROLE_ADMIN, ROLE_USER, User
from app.foro.rbac import PERM_USERS_MANAGE, get_role, user_has_permission
from app.foro.sanitize import sanitize_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


VALID_ROLES = (ROLE_USER, ROLE_ADMIN)
MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 100

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(raw: Any) -> str:
    return raw.strip().lower() if isinstance(raw, str) else ""


def email_taken(s: "Session", email: str, exclude_user_id: int | None = None) -> bool:
    q = s.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    return q.first() is not None


def _name_errors(payload: dict) -> list[str]:
    name = payload.get("name")
    if name is None:
        return []
    if not isinstance(name, str):
        return ["Name must be a string."]
    if not name.strip():
        return ["Name cannot be empty."]
    if len(name.strip()) > MAX_NAME_LENGTH:
        return [f"Name must be at most {MAX_NAME_LENGTH} characters."]
    return []


def _password_errors(password: Any, *, required: bool) -> list[str]:
    if password is None or password == "":
        return ["Password is required."] if required else []
    if not isinstance(password, str):
        return ["Password must be a string."]
    if len(password) < MIN_PASSWORD_LENGTH:
        return [f"Password must be at least {MIN_PASSWORD_LENGTH} characters."]
    return []


def validate_new_user(s: "Session", payload: dict, *, allow_role: bool = False) -> list[str]:
    """
    Validate registration / admin-create payload. Returns list of errors.
    Without allow_role any "role" key is ignored; create_user assigns "user".
    """
    errors = _name_errors(payload)
    email = normalize_email(payload.get("email"))
    if not _EMAIL_RE.match(email):
        errors.append("A valid email is required.")
    errors.extend(_password_errors(payload.get("password"), required=True))
    role = payload.get("role")
    if allow_role and role is not None and role not in VALID_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    if not errors and email_taken(s, email):
        errors.append("Email already registered")
    return errors


def validate_user_update(s: "Session", user: User, payload: dict, *, manager: bool) -> list[str]:
    errors = _name_errors(payload)
    email = payload.get("email")
    if email is not None and not _EMAIL_RE.match(normalize_email(email)):
        errors.append("A valid email is required.")
    errors.extend(_password_errors(payload.get("password"), required=False))
    role = payload.get("role")
    if role is not None and role not in VALID_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    is_active = payload.get("is_active")
    if is_active is not None and not isinstance(is_active, bool):
        errors.append("is_active must be a boolean.")
    # Only managers can change the email, so only their requests can collide.
    if not errors and manager and email is not None and email_taken(s, normalize_email(email), exclude_user_id=user.id):
        errors.append("Email already in use")
    return errors


def _clean_name(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    return sanitize_text(raw) or None


def _set_role(s: "Session", user: User, role_key: str) -> None:
    user.roles = [get_role(s, role_key)]


def create_user(s: "Session", payload: dict, actor: User | None = None) -> User:
    """
    Create an account. Without an actor this is a public registration and the
    role is always "user"; admins may pick the role.
    """
    now = datetime.utcnow()
    user = User(
        email=normalize_email(payload.get("email")),
        name=_clean_name(payload.get("name")),
        password_hash=generate_password_hash(payload["password"]),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    role_key = (payload.get("role") or ROLE_USER) if actor is not None else ROLE_USER
    _set_role(s, user, role_key)
    s.add(user)
    s.flush()

    record_event(
        s,
        actor=actor or user,
        action="user.create" if actor is not None else "user.register",
        entity_type="User",
        entity_id=user.id,
        metadata={"email": user.email, "role": role_key},
    )
    return user


def update_user(s: "Session", user: User, payload: dict, actor: User) -> list[str]:
    """
    Apply an update. Email, role and activation are only honoured for account
    managers; other callers can change their own name and password. Returns the
    names of the fields that changed.
    """
    manager = user_has_permission(actor, PERM_USERS_MANAGE)
    changed: list[str] = []

    if "name" in payload:
        new_name = _clean_name(payload.get("name"))
        if new_name != user.name:
            user.name = new_name
            changed.append("name")

    if manager and payload.get("email") is not None:
        new_email = normalize_email(payload.get("email"))
        if new_email != user.email:
            user.email = new_email
            changed.append("email")

    if payload.get("password"):
        user.password_hash = generate_password_hash(payload["password"])
        changed.append("password")

    if manager:
        role_key = payload.get("role")
        if role_key and role_key != user.role:
            _set_role(s, user, role_key)
            changed.append("role")
        is_active = payload.get("is_active")
        if isinstance(is_active, bool) and is_active != user.is_active:
            user.is_active = is_active
            changed.append("is_active")

    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=user.id,
        metadata={"changed": changed},
    )
    return changed


def delete_user(s: "Session", user: User, actor: User) -> None:
    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=user.id,
        metadata={"email": user.email},
    )
    s.delete(user)


def list_users(s: "Session", *, search: str = "", page: int = 1, limit: int = 10) -> tuple[list[User], int]:
    q = s.query(User)
    if search:
        like = contains_pattern(search.lower())
        q = q.filter(
            or_(
                func.lower(User.name).like(like, escape=LIKE_ESCAPE),
                func.lower(User.email).like(like, escape=LIKE_ESCAPE),
            )
        )
    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return users, total


def content_counts(s: "Session", user_ids: list[int]) -> dict[int, dict[str, int]]:
    from app.foro.modules.comments.models import Comment
    from app.foro.modules.posts.models import Post

    counts = {uid: {"posts": 0, "comments": 0} for uid in user_ids}
    if not user_ids:
        return counts
    for uid, n in s.query(Post.author_id, func.count(Post.id)).filter(Post.author_id.in_(user_ids)).group_by(Post.author_id):
        counts[uid]["posts"] = n
    for uid, n in (
        s.query(Comment.author_id, func.count(Comment.id)).filter(Comment.author_id.in_(user_ids)).group_by(Comment.author_id)
    ):
        counts[uid]["comments"] = n
    return counts


def can_see_private_fields(viewer: User | None, user_id: int) -> bool:
    if viewer is None:
        return False
    return viewer.id == user_id or user_has_permission(viewer, PERM_USERS_MANAGE)


def serialize_user(user: User, viewer: User | None, counts: dict[str, int] | None = None) -> dict:
    """Public view of an account; email, role and activation only for the owner or a manager."""
    data: dict[str, Any] = {
        "id": user.id,
        "name": user.name,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }
    if can_see_private_fields(viewer, user.id):
        data["email"] = user.email
        data["role"] = user.role
        data["is_active"] = user.is_active
    if counts is not None:
        data["counts"] = counts
    return data


def serialize_author(user: User, viewer: User | None) -> dict:
    data: dict[str, Any] = {"id": user.id, "name": user.name}
    if can_see_private_fields(viewer, user.id):
        data["email"] = user.email
    return data
