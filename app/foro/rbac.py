from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for
from sqlalchemy.orm import Session

from app.foro.models import ROLE_ADMIN, ROLE_USER, Permission, Role, User

PERM_ADMIN_VIEW = "admin.view"
PERM_USERS_MANAGE = "users.manage"
PERM_POSTS_MODERATE = "posts.moderate"
PERM_COMMENTS_MODERATE = "comments.moderate"
PERM_AUDIT_VIEW = "audit.view"

PERMISSIONS: dict[str, str] = {
    PERM_ADMIN_VIEW: "Admin: view dashboard",
    PERM_USERS_MANAGE: "Users: manage accounts",
    PERM_POSTS_MODERATE: "Posts: moderate",
    PERM_COMMENTS_MODERATE: "Comments: moderate",
    PERM_AUDIT_VIEW: "Audit: view trail",
}

ROLES: dict[str, tuple[str, tuple[str, ...]]] = {
    ROLE_ADMIN: ("Administrator", tuple(PERMISSIONS)),
    ROLE_USER: ("Member", ()),
}


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def is_owner_or(user: User | None, owner_id: int | None, permission_key: str) -> bool:
    """Author-or-moderator check shared by every content route."""
    if not user or not user.is_active:
        return False
    return user.id == owner_id or user_has_permission(user, permission_key)


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user = current_user()
        if not user or not user.is_active:
            if _wants_json():
                abort(401)
            return _login_redirect()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Unauthenticated: 401 for the API, login redirect for pages.
            if not user or not user.is_active:
                if _wants_json():
                    abort(401)
                return _login_redirect()
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def ensure_roles(s: Session) -> dict[str, Role]:
    """Create missing permissions and roles and attach role permissions. Idempotent."""
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS.items():
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for key, (name, perm_keys) in ROLES.items():
        r = s.query(Role).filter(Role.key == key).one_or_none()
        if not r:
            r = Role(key=key, name=name)
            s.add(r)
        for pk in perm_keys:
            if perms[pk] not in r.permissions:
                r.permissions.append(perms[pk])
        roles[key] = r
    s.flush()
    return roles


def get_role(s: Session, key: str) -> Role:
    role = s.query(Role).filter(Role.key == key).one_or_none()
    if role is None:
        role = ensure_roles(s)[key]
    return role
