import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.foro.models import ROLE_ADMIN, Base, User
from app.foro.rbac import ensure_roles
from scripts._db_utils import create_script_engine, resolve_db_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@foro.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    db_url = resolve_db_url(database_url)

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        roles = ensure_roles(s)
        role_admin = roles[ROLE_ADMIN]

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, name="Admin", password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def create_tables(*, database_url: str | None = None) -> None:
    """Local development shortcut: create_all without alembic."""
    engine = create_script_engine(resolve_db_url(database_url))
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def main() -> None:
    if "--create-tables" in sys.argv[1:]:
        create_tables(database_url=None)
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
